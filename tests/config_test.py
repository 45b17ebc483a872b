from __future__ import annotations

import pathlib

import pydantic
import pytest

from peertrack.config import AuthConfig
from peertrack.config import ServerConfig
from peertrack.config import StoreConfig
from peertrack.config import TurnConfig


def test_defaults() -> None:
    config = ServerConfig()
    assert config.port == 3002
    assert config.peer_ttl == 300
    assert config.max_peers == 6
    assert config.signal_ttl == 30
    assert not config.need_tier
    assert config.store.backend == 'memory'
    assert config.turn.secret is None
    assert config.auth.method is None


@pytest.mark.parametrize(
    'kwargs',
    (
        {'port': 0},
        {'port': 65536},
        {'peer_ttl': 0},
        {'signal_ttl': -1},
        {'max_peers': 0},
        {'sweep_interval': 0},
    ),
)
def test_invalid_values(kwargs) -> None:
    with pytest.raises(pydantic.ValidationError):
        ServerConfig(**kwargs)


def test_sweep_can_be_disabled() -> None:
    assert ServerConfig(sweep_interval=None).sweep_interval is None


def test_secrets_excluded_from_repr() -> None:
    store = StoreConfig(password='hunter2')
    turn = TurnConfig(secret='hunter3')
    assert 'hunter2' not in repr(store)
    assert 'hunter3' not in repr(turn)


def test_toml_round_trip(tmp_path: pathlib.Path) -> None:
    config = ServerConfig(
        port=4000,
        peer_ttl=60,
        store=StoreConfig(backend='redis', host='redis.internal'),
        turn=TurnConfig(secret='secret', turn_urls=['turn:a']),
    )
    filepath = tmp_path / 'peertrack.toml'
    filepath.write_text(config.to_toml())

    assert ServerConfig.from_toml(filepath) == config


def test_from_toml_partial(tmp_path: pathlib.Path) -> None:
    filepath = tmp_path / 'peertrack.toml'
    filepath.write_text(
        'max_peers = 3\n'
        '\n'
        '[store]\n'
        'backend = "redis"\n'
        'port = 6380\n',
    )

    config = ServerConfig.from_toml(filepath)
    assert config.max_peers == 3
    assert config.store.backend == 'redis'
    assert config.store.port == 6380
    assert config.port == 3002


def test_from_toml_unknown_store_option(tmp_path: pathlib.Path) -> None:
    filepath = tmp_path / 'peertrack.toml'
    filepath.write_text('[store]\nbackend = "memory"\nbogus = 1\n')

    with pytest.raises(pydantic.ValidationError):
        ServerConfig.from_toml(filepath)


def test_from_env() -> None:
    config = ServerConfig.from_env(
        {
            'PORT': '4000',
            'PEER_TTL': '120',
            'MAX_PEERS_RESPONSE': '10',
            'SIGNAL_TTL': '15',
            'CORS_ORIGINS': 'https://a.example, https://b.example,',
            'REDIS_HOST': 'redis.internal',
            'REDIS_PORT': '6380',
            'REDIS_PASSWORD': 'pw',
            'TURN_SECRET': 'secret',
            'TURN_URLS': 'turn:a,turn:b',
            'STUN_URLS': 'stun:a',
            'LOG_LEVEL': 'debug',
        },
    )
    assert config.port == 4000
    assert config.peer_ttl == 120
    assert config.max_peers == 10
    assert config.signal_ttl == 15
    assert config.cors_origins == ['https://a.example', 'https://b.example']
    assert config.store.backend == 'redis'
    assert config.store.host == 'redis.internal'
    assert config.store.port == 6380
    assert config.store.password == 'pw'
    assert config.turn.secret == 'secret'
    assert config.turn.turn_urls == ['turn:a', 'turn:b']
    assert config.turn.stun_urls == ['stun:a']
    assert config.logging.default_level == 'DEBUG'


def test_from_env_empty() -> None:
    assert ServerConfig.from_env({}) == ServerConfig()


def test_from_env_overrides_base() -> None:
    base = ServerConfig(port=4000, max_peers=3)
    config = ServerConfig.from_env({'PORT': '5000'}, base=base)
    assert config.port == 5000
    assert config.max_peers == 3


def test_from_env_invalid() -> None:
    with pytest.raises(pydantic.ValidationError):
        ServerConfig.from_env({'PORT': 'not-a-port'})


def test_from_env_jwt_secret() -> None:
    secret = 'x' * 32
    config = ServerConfig.from_env({'JWT_SECRET': secret})
    assert config.auth.method == 'jwt'
    assert config.auth.kwargs == {'secret': secret}


def test_from_env_short_jwt_secret() -> None:
    with pytest.raises(pydantic.ValidationError, match='32 characters'):
        ServerConfig.from_env({'JWT_SECRET': 'short'})


@pytest.mark.parametrize('kwargs', ({}, {'secret': 'short'}, {'secret': 42}))
def test_jwt_auth_requires_long_secret(kwargs) -> None:
    with pytest.raises(pydantic.ValidationError):
        AuthConfig(method='jwt', kwargs=kwargs)
