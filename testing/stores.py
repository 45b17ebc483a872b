"""Peer state store fixtures."""
from __future__ import annotations

from typing import Any
from typing import AsyncGenerator
from unittest import mock

import pytest
import pytest_asyncio

from peertrack.store.memory import MemoryStore
from peertrack.store.protocols import PeerStateStore
from peertrack.store.redis import RedisStore
from testing.clock import ManualClock
from testing.mocked.redis import MockAsyncRedis


@pytest.fixture()
def clock() -> ManualClock:
    """Manual clock shared by a store and the code under test."""
    return ManualClock()


@pytest_asyncio.fixture()
async def memory_store(
    clock: ManualClock,
) -> AsyncGenerator[MemoryStore, None]:
    """MemoryStore fixture driven by the manual clock."""
    store = MemoryStore(clock=clock)
    yield store
    await store.close()


@pytest_asyncio.fixture()
async def redis_store(
    clock: ManualClock,
) -> AsyncGenerator[RedisStore, None]:
    """RedisStore fixture backed by a mocked Redis client.

    Every client created inside the fixture shares one key space so the
    mock behaves like a single Redis server.
    """
    data: dict[str, Any] = {}
    expiry: dict[str, float] = {}

    def create_mocked_redis(*args: Any, **kwargs: Any) -> MockAsyncRedis:
        return MockAsyncRedis(data, expiry, clock, *args, **kwargs)

    with mock.patch('redis.asyncio.Redis', side_effect=create_mocked_redis):
        store = RedisStore('localhost', 6379)
        yield store
        await store.close()


@pytest.fixture(params=['memory_store', 'redis_store'])
def store(request) -> PeerStateStore:
    """Parameterized fixture that returns every store implementation."""
    return request.getfixturevalue(request.param)
