"""Peer state store protocol."""
from __future__ import annotations

from typing import Protocol
from typing import runtime_checkable


@runtime_checkable
class PeerStateStore(Protocol):
    """Shared store owning all persisted peer and signaling state.

    A store provides three capabilities: string keys with per-key expiry,
    named sets with expiry, and per-recipient ordered queues with an atomic
    pop-all. All methods raise
    [`ServiceUnavailableError`][peertrack.exceptions.ServiceUnavailableError]
    when the backing service cannot be reached. Missing keys are never an
    error.
    """

    async def get(self, key: str) -> str | None:
        """Get the value of a key or `None` if it does not exist."""
        ...

    async def set(self, key: str, value: str, ttl: int) -> None:
        """Set the value of a key, replacing its expiry with `ttl` seconds."""
        ...

    async def delete(self, key: str) -> None:
        """Delete a key of any type."""
        ...

    async def set_add(self, key: str, member: str) -> None:
        """Add a member to a named set, creating the set if needed."""
        ...

    async def set_remove(self, key: str, member: str) -> None:
        """Remove a member from a named set."""
        ...

    async def set_members(self, key: str) -> list[str]:
        """List the members of a named set."""
        ...

    async def set_size(self, key: str) -> int:
        """Get the number of members in a named set."""
        ...

    async def extend_expiry(self, key: str, ttl: int) -> None:
        """Extend the expiry of a key to `max(current, ttl)` seconds.

        Keys without an expiry get one. Expiries are never shortened.
        """
        ...

    async def queue_push(self, key: str, value: str, ttl: int) -> None:
        """Append a value to an ordered queue and refresh its expiry."""
        ...

    async def queue_pop_all(self, key: str) -> list[str]:
        """Atomically remove and return every value in a queue.

        Concurrent callers never observe the same value.
        """
        ...

    async def keys(self, pattern: str) -> list[str]:
        """List live keys matching a glob-style pattern."""
        ...

    async def ping(self) -> None:
        """Check the store is reachable."""
        ...

    async def close(self) -> None:
        """Close the store."""
        ...
