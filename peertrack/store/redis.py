"""Redis peer state store implementation."""
from __future__ import annotations

import contextlib
import logging
import sys
from types import TracebackType
from typing import Any
from typing import Generator

if sys.version_info >= (3, 11):  # pragma: >=3.11 cover
    from typing import Self
else:  # pragma: <3.11 cover
    from typing_extensions import Self

import redis.asyncio
import redis.exceptions

from peertrack.exceptions import ServiceUnavailableError

logger = logging.getLogger(__name__)


@contextlib.contextmanager
def _unavailable_on_error() -> Generator[None, None, None]:
    try:
        yield
    except (
        redis.exceptions.ConnectionError,
        redis.exceptions.TimeoutError,
    ) as e:
        logger.warning(f'Redis request failed: {e!r}')
        raise ServiceUnavailableError(
            f'Peer state store is unavailable: {e}',
        ) from e


class RedisStore:
    """Redis server backed store.

    Values are stored as UTF-8 strings, named sets as Redis sets, and
    queues as Redis lists.

    Args:
        hostname: Redis server hostname.
        port: Redis server port.
        password: Optional Redis password.
        db: Redis database index.
        kwargs: Extra keyword arguments to pass to
            [`redis.asyncio.Redis()`][redis.asyncio.Redis].
    """

    def __init__(
        self,
        hostname: str,
        port: int,
        *,
        password: str | None = None,
        db: int = 0,
        **kwargs: Any,
    ) -> None:
        self.hostname = hostname
        self.port = port
        self.db = db
        self._redis_client = redis.asyncio.Redis(
            host=hostname,
            port=port,
            password=password,
            db=db,
            decode_responses=True,
            **kwargs,
        )

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        exc_traceback: TracebackType | None,
    ) -> None:
        await self.close()

    def __repr__(self) -> str:
        return (
            f'{self.__class__.__name__}(hostname={self.hostname}, '
            f'port={self.port}, db={self.db})'
        )

    async def get(self, key: str) -> str | None:
        """Get the value of a key or `None` if it does not exist."""
        with _unavailable_on_error():
            return await self._redis_client.get(key)

    async def set(self, key: str, value: str, ttl: int) -> None:
        """Set the value of a key, replacing its expiry with `ttl` seconds."""
        with _unavailable_on_error():
            await self._redis_client.set(key, value, ex=ttl)

    async def delete(self, key: str) -> None:
        """Delete a key of any type."""
        with _unavailable_on_error():
            await self._redis_client.delete(key)

    async def set_add(self, key: str, member: str) -> None:
        """Add a member to a named set, creating the set if needed."""
        with _unavailable_on_error():
            await self._redis_client.sadd(key, member)

    async def set_remove(self, key: str, member: str) -> None:
        """Remove a member from a named set."""
        with _unavailable_on_error():
            await self._redis_client.srem(key, member)

    async def set_members(self, key: str) -> list[str]:
        """List the members of a named set.

        Redis sets are unordered so members are returned sorted to keep
        selection tie-breaking reproducible.
        """
        with _unavailable_on_error():
            members = await self._redis_client.smembers(key)
        return sorted(members)

    async def set_size(self, key: str) -> int:
        """Get the number of members in a named set."""
        with _unavailable_on_error():
            return await self._redis_client.scard(key)

    async def extend_expiry(self, key: str, ttl: int) -> None:
        """Extend the expiry of a key to `max(current, ttl)` seconds.

        Redis reports `-1` for keys without an expiry and `-2` for missing
        keys. Missing keys are left alone.
        """
        with _unavailable_on_error():
            current = await self._redis_client.ttl(key)
            if current == -2:
                return
            if current == -1 or current < ttl:
                await self._redis_client.expire(key, ttl)

    async def queue_push(self, key: str, value: str, ttl: int) -> None:
        """Append a value to an ordered queue and refresh its expiry."""
        with _unavailable_on_error():
            async with self._redis_client.pipeline(transaction=True) as pipe:
                pipe.rpush(key, value)
                pipe.expire(key, ttl)
                await pipe.execute()

    async def queue_pop_all(self, key: str) -> list[str]:
        """Atomically remove and return every value in a queue.

        The read and delete run inside a single MULTI/EXEC transaction.
        """
        with _unavailable_on_error():
            async with self._redis_client.pipeline(transaction=True) as pipe:
                pipe.lrange(key, 0, -1)
                pipe.delete(key)
                values, _ = await pipe.execute()
        return list(values)

    async def keys(self, pattern: str) -> list[str]:
        """List live keys matching a glob-style pattern.

        Uses `SCAN` rather than `KEYS` to avoid blocking the server.
        """
        with _unavailable_on_error():
            return [
                key
                async for key in self._redis_client.scan_iter(match=pattern)
            ]

    async def ping(self) -> None:
        """Check the store is reachable."""
        with _unavailable_on_error():
            await self._redis_client.ping()

    async def close(self) -> None:
        """Close the connection pool."""
        await self._redis_client.aclose()
