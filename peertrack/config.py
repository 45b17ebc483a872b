"""Server configuration."""
from __future__ import annotations

import logging
import os
import pathlib
import sys
from typing import Any
from typing import Literal
from typing import Mapping

if sys.version_info >= (3, 11):  # pragma: >=3.11 cover
    from typing import Self
else:  # pragma: <3.11 cover
    from typing_extensions import Self

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import field_validator
from pydantic import model_validator

from peertrack.constants import JWT_SECRET_MIN_LENGTH
from peertrack.constants import MAX_CONTENT_LENGTH_DEFAULT
from peertrack.constants import MAX_PEERS_DEFAULT
from peertrack.constants import PEER_TTL_DEFAULT
from peertrack.constants import SIGNAL_TTL_DEFAULT
from peertrack.constants import SWEEP_INTERVAL_DEFAULT
from peertrack.constants import SWEEP_MAX_RETRIES_DEFAULT
from peertrack.constants import TURN_TTL_DEFAULT
from peertrack.utils.config import dumps
from peertrack.utils.config import load


class StoreConfig(BaseModel):
    """Peer state store configuration.

    Attributes:
        backend: Store implementation. The `memory` backend is only safe
            for a single server process.
        host: Redis server hostname.
        port: Redis server port.
        password: Optional Redis password. Excluded from the
            [`repr()`][repr] of this class.
        db: Redis database index.
    """

    model_config = ConfigDict(extra='forbid')

    backend: Literal['memory', 'redis'] = 'memory'
    host: str = 'localhost'
    port: int = 6379
    password: str | None = Field(default=None, repr=False)
    db: int = 0


class TurnConfig(BaseModel):
    """TURN/STUN credential configuration.

    Attributes:
        secret: Shared secret with the TURN server. Credentials cannot be
            issued if unset. Excluded from the [`repr()`][repr].
        turn_urls: TURN server URIs.
        stun_urls: STUN server URIs.
        ttl: Lifetime of issued credentials in seconds.
    """

    model_config = ConfigDict(extra='forbid')

    secret: str | None = Field(default=None, repr=False)
    turn_urls: list[str] = Field(
        default_factory=lambda: ['turn:localhost:3478'],
    )
    stun_urls: list[str] = Field(
        default_factory=lambda: ['stun:localhost:3478'],
    )
    ttl: int = TURN_TTL_DEFAULT


class AuthConfig(BaseModel):
    """Authentication configuration.

    Attributes:
        method: Authentication method. `None` disables authentication.
            `token` checks bearer tokens against a static `tokens` table
            and `jwt` verifies HS256 JWTs signed with `secret`.
        kwargs: Arbitrary keyword arguments to pass to the authenticator.
            The kwargs are excluded from the [`repr()`][repr] of this
            class because they often contain secrets.
    """

    model_config = ConfigDict(extra='forbid')

    method: Literal['token', 'jwt'] | None = None
    kwargs: dict[str, Any] = Field(default_factory=dict, repr=False)

    @model_validator(mode='after')
    def _jwt_secret_validator(self) -> Self:
        if self.method == 'jwt':
            secret = self.kwargs.get('secret')
            if (
                not isinstance(secret, str)
                or len(secret) < JWT_SECRET_MIN_LENGTH
            ):
                raise ValueError(
                    'JWT secret must be at least '
                    f'{JWT_SECRET_MIN_LENGTH} characters long.',
                )
        return self


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        log_dir: Optional directory to write rotating log files to.
        default_level: Default logging level for the root logger.
        access_level: Log level of the `uvicorn` loggers.
    """

    log_dir: str | None = None
    default_level: int | str = logging.INFO
    access_level: int | str = logging.WARNING


class ServerConfig(BaseModel):
    """Signaling server configuration.

    Attributes:
        host: Network interface the server binds to.
        port: Network port the server binds to.
        peer_ttl: Seconds a presence record is valid after an announce.
        max_peers: Maximum peers returned by a selection.
        signal_ttl: Seconds undelivered signaling messages are kept.
        need_tier: Always rank peers holding a needed chunk above peers
            holding none.
        sweep_interval: Seconds between membership sweeps. `None` disables
            the sweep.
        sweep_max_retries: Retries of a failed sweep cycle.
        max_content_length: Max request body size in bytes.
        cors_origins: Allowed browser origins. Enforced by the fronting
            proxy, not by this server.
        rate_limit_per_minute: Global request limit per client. Enforced by
            the fronting proxy, not by this server.
        announce_limit_per_minute: Announce request limit per client.
            Enforced by the fronting proxy, not by this server.
        store: Peer state store configuration.
        turn: TURN credential configuration.
        auth: Authentication configuration.
        logging: Logging configuration.
    """

    host: str = '0.0.0.0'
    port: int = 3002
    peer_ttl: int = PEER_TTL_DEFAULT
    max_peers: int = MAX_PEERS_DEFAULT
    signal_ttl: int = SIGNAL_TTL_DEFAULT
    need_tier: bool = False
    sweep_interval: float | None = SWEEP_INTERVAL_DEFAULT
    sweep_max_retries: int = SWEEP_MAX_RETRIES_DEFAULT
    max_content_length: int = MAX_CONTENT_LENGTH_DEFAULT
    cors_origins: list[str] = Field(
        default_factory=lambda: [
            'http://localhost:3000',
            'http://localhost:3001',
            'http://localhost:5173',
        ],
    )
    rate_limit_per_minute: int = 10_000
    announce_limit_per_minute: int = 500
    store: StoreConfig = Field(default_factory=StoreConfig)
    turn: TurnConfig = Field(default_factory=TurnConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator('port')
    @classmethod
    def _port_validator(cls, v: int) -> int:
        if not (1 <= v <= 65535):
            raise ValueError('Port must be in range [1, 65535].')
        return v

    @field_validator('peer_ttl', 'signal_ttl', 'max_peers')
    @classmethod
    def _positive_validator(cls, v: int) -> int:
        if v < 1:
            raise ValueError('Value must be >= 1.')
        return v

    @field_validator('sweep_interval')
    @classmethod
    def _sweep_interval_validator(cls, v: float | None) -> float | None:
        if v is not None and v <= 0:
            raise ValueError('Sweep interval must be None or > 0.')
        return v

    @classmethod
    def from_toml(cls, filepath: str | pathlib.Path) -> Self:
        """Parse a TOML config file.

        Example:
            ```toml title="peertrack.toml"
            port = 3002
            peer_ttl = 300
            max_peers = 6

            [store]
            backend = "redis"
            host = "redis.internal"

            [turn]
            secret = "..."
            turn_urls = ["turn:turn.example.com:3478"]

            [logging]
            log_dir = "/var/log/peertrack"
            default_level = "INFO"
            ```

        Note:
            Omitted values will be set to their defaults.
        """
        with open(filepath, 'rb') as f:
            return load(cls, f)

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        *,
        base: ServerConfig | None = None,
    ) -> Self:
        """Override a configuration with environment variables.

        | Variable | Field |
        | -------- | ----- |
        | `PORT` | `port` |
        | `PEER_TTL` | `peer_ttl` |
        | `MAX_PEERS_RESPONSE` | `max_peers` |
        | `SIGNAL_TTL` | `signal_ttl` |
        | `CORS_ORIGINS` | `cors_origins` (comma separated) |
        | `REDIS_HOST` | `store.host` (also selects the redis backend) |
        | `REDIS_PORT` | `store.port` |
        | `REDIS_PASSWORD` | `store.password` |
        | `TURN_SECRET` | `turn.secret` |
        | `TURN_URLS` | `turn.turn_urls` (comma separated) |
        | `STUN_URLS` | `turn.stun_urls` (comma separated) |
        | `JWT_SECRET` | `auth.kwargs.secret` (also selects `jwt` auth) |
        | `LOG_LEVEL` | `logging.default_level` |

        Args:
            environ: Mapping to read variables from. Defaults to
                [`os.environ`][os.environ].
            base: Configuration to override. Defaults to the default
                configuration.

        Raises:
            pydantic.ValidationError: if a variable has an invalid value.
        """
        environ = os.environ if environ is None else environ
        data = (cls() if base is None else base).model_dump()

        top = {
            'PORT': 'port',
            'PEER_TTL': 'peer_ttl',
            'MAX_PEERS_RESPONSE': 'max_peers',
            'SIGNAL_TTL': 'signal_ttl',
        }
        for var, field in top.items():
            if var in environ:
                data[field] = environ[var]
        if 'CORS_ORIGINS' in environ:
            data['cors_origins'] = _split(environ['CORS_ORIGINS'])

        if 'REDIS_HOST' in environ:
            data['store']['backend'] = 'redis'
            data['store']['host'] = environ['REDIS_HOST']
        if 'REDIS_PORT' in environ:
            data['store']['port'] = environ['REDIS_PORT']
        if 'REDIS_PASSWORD' in environ:
            data['store']['password'] = environ['REDIS_PASSWORD']

        if 'TURN_SECRET' in environ:
            data['turn']['secret'] = environ['TURN_SECRET']
        if 'TURN_URLS' in environ:
            data['turn']['turn_urls'] = _split(environ['TURN_URLS'])
        if 'STUN_URLS' in environ:
            data['turn']['stun_urls'] = _split(environ['STUN_URLS'])

        if 'JWT_SECRET' in environ:
            data['auth'] = {
                'method': 'jwt',
                'kwargs': {'secret': environ['JWT_SECRET']},
            }

        if 'LOG_LEVEL' in environ:
            data['logging']['default_level'] = environ['LOG_LEVEL'].upper()

        return cls.model_validate(data)

    def to_toml(self) -> str:
        """Serialize the configuration as a TOML string.

        Warning:
            Secrets (Redis password, TURN secret, auth kwargs) are included.
        """
        return dumps(self)


def _split(value: str) -> list[str]:
    return [part.strip() for part in value.split(',') if part.strip()]
