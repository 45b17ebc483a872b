"""In-process peer state store."""
from __future__ import annotations

import fnmatch
import time
from typing import Any
from typing import Callable


class MemoryStore:
    """Dictionary-based store with lazy key expiry.

    Suitable for tests and single-process deployments. State is not shared
    between processes so multiple service replicas must use a shared store
    such as [`RedisStore`][peertrack.store.redis.RedisStore] instead.

    Args:
        clock: Zero argument callable returning the current time in
            seconds. Defaults to [`time.monotonic()`][time.monotonic].
    """

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._data: dict[str, Any] = {}
        self._expiry: dict[str, float] = {}

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}(keys={len(self._data)})'

    def _expire(self, key: str) -> None:
        deadline = self._expiry.get(key)
        if deadline is not None and deadline <= self._clock():
            self._data.pop(key, None)
            self._expiry.pop(key, None)

    def _lookup(self, key: str, kind: type) -> Any:
        self._expire(key)
        value = self._data.get(key)
        if value is not None and not isinstance(value, kind):
            raise TypeError(
                f'Key {key} holds a {type(value).__name__} value, '
                f'not {kind.__name__}.',
            )
        return value

    async def get(self, key: str) -> str | None:
        """Get the value of a key or `None` if it does not exist."""
        return self._lookup(key, str)

    async def set(self, key: str, value: str, ttl: int) -> None:
        """Set the value of a key, replacing its expiry with `ttl` seconds."""
        self._data[key] = value
        self._expiry[key] = self._clock() + ttl

    async def delete(self, key: str) -> None:
        """Delete a key of any type."""
        self._data.pop(key, None)
        self._expiry.pop(key, None)

    async def set_add(self, key: str, member: str) -> None:
        """Add a member to a named set, creating the set if needed."""
        members = self._lookup(key, dict)
        if members is None:
            # Dict keys keep insertion order so listing is deterministic
            members = {}
            self._data[key] = members
        members[member] = None

    async def set_remove(self, key: str, member: str) -> None:
        """Remove a member from a named set."""
        members = self._lookup(key, dict)
        if members is not None:
            members.pop(member, None)
            if len(members) == 0:
                await self.delete(key)

    async def set_members(self, key: str) -> list[str]:
        """List the members of a named set."""
        members = self._lookup(key, dict)
        return [] if members is None else list(members)

    async def set_size(self, key: str) -> int:
        """Get the number of members in a named set."""
        members = self._lookup(key, dict)
        return 0 if members is None else len(members)

    async def extend_expiry(self, key: str, ttl: int) -> None:
        """Extend the expiry of a key to `max(current, ttl)` seconds."""
        self._expire(key)
        if key not in self._data:
            return
        deadline = self._clock() + ttl
        current = self._expiry.get(key)
        if current is None or current < deadline:
            self._expiry[key] = deadline

    async def queue_push(self, key: str, value: str, ttl: int) -> None:
        """Append a value to an ordered queue and refresh its expiry."""
        queue = self._lookup(key, list)
        if queue is None:
            queue = []
            self._data[key] = queue
        queue.append(value)
        self._expiry[key] = self._clock() + ttl

    async def queue_pop_all(self, key: str) -> list[str]:
        """Atomically remove and return every value in a queue."""
        queue = self._lookup(key, list)
        if queue is None:
            return []
        # No await between the read and the removal
        del self._data[key]
        self._expiry.pop(key, None)
        return queue

    async def keys(self, pattern: str) -> list[str]:
        """List live keys matching a glob-style pattern."""
        for key in list(self._data):
            self._expire(key)
        return [key for key in self._data if fnmatch.fnmatchcase(key, pattern)]

    async def ping(self) -> None:
        """Check the store is reachable."""
        pass

    async def close(self) -> None:
        """Clear all stored state."""
        self._data.clear()
        self._expiry.clear()
