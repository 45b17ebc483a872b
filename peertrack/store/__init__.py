"""Peer state store interface and implementations."""
from __future__ import annotations

from peertrack.config import StoreConfig
from peertrack.store.memory import MemoryStore
from peertrack.store.protocols import PeerStateStore
from peertrack.store.redis import RedisStore


def get_store(config: StoreConfig) -> PeerStateStore:
    """Create a peer state store from a configuration.

    Args:
        config: Configuration.

    Returns:
        Store.

    Raises:
        ValueError: if the backend in the config is unknown.
    """
    if config.backend == 'memory':
        return MemoryStore()
    elif config.backend == 'redis':
        return RedisStore(
            config.host,
            config.port,
            password=config.password,
            db=config.db,
        )
    else:
        raise ValueError(f'Unknown store backend "{config.backend}".')
