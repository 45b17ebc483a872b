from __future__ import annotations

# Import fixtures from testing/ so they are known by pytest
from testing.stores import clock
from testing.stores import memory_store
from testing.stores import redis_store
from testing.stores import store
