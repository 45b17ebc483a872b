"""`peertrack` command-line interface and serving functions."""
from __future__ import annotations

import asyncio
import datetime
import logging
import logging.handlers
import os
import sys

import click
import uvicorn
import uvloop

import peertrack
from peertrack.auth import get_authenticator
from peertrack.config import ServerConfig
from peertrack.server import create_app
from peertrack.service import PeerTrackService
from peertrack.store import get_store
from peertrack.sweep import MembershipSweeper
from peertrack.turn import TurnCredentialIssuer

logger = logging.getLogger(__name__)

LOG_FORMAT = (
    '[%(asctime)s.%(msecs)03d] %(levelname)-5s (%(name)s) :: %(message)s'
)
LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'


def create_service(config: ServerConfig) -> PeerTrackService:
    """Create a service and its store from a configuration."""
    turn = TurnCredentialIssuer(
        config.turn.secret,
        turn_urls=config.turn.turn_urls,
        stun_urls=config.turn.stun_urls,
        ttl=config.turn.ttl,
    )
    if not turn.configured:
        logger.warning('TURN secret not set, TURN credentials will not work')

    return PeerTrackService(
        get_store(config.store),
        peer_ttl=config.peer_ttl,
        max_peers=config.max_peers,
        signal_ttl=config.signal_ttl,
        need_tier=config.need_tier,
        turn=turn,
    )


async def serve(config: ServerConfig) -> None:
    """Run the signaling server.

    Note:
        This function will not configure any logging. Configuring logging
        according to
        [`ServerConfig.logging`][peertrack.config.ServerConfig] is the
        responsibility of the caller.

    Raises:
        ServiceUnavailableError: if the peer state store cannot be reached
            at startup.
    """
    service = create_service(config)
    await service.store.ping()
    logger.info(f'Connected to peer state store: {service.store!r}')

    sweeper = (
        MembershipSweeper(
            service.registry,
            interval=config.sweep_interval,
            max_retries=config.sweep_max_retries,
        )
        if config.sweep_interval is not None
        else None
    )
    app = create_app(
        service,
        get_authenticator(config.auth),
        sweeper=sweeper,
        max_content_length=config.max_content_length,
    )

    server_config = uvicorn.Config(
        app,
        host=config.host,
        port=config.port,
        log_config=None,
        access_log=False,
    )
    server = uvicorn.Server(server_config)

    logger.info(f'Serving configuration: {config!r}')
    logger.info(f'Signaling server listening on {config.host}:{config.port}')
    await server.serve()
    logger.info('Signaling server shutdown')


def configure_logging(config: ServerConfig) -> None:
    """Configure the root logger according to the logging configuration."""
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if config.logging.log_dir is not None:
        os.makedirs(config.logging.log_dir, exist_ok=True)
        handlers.append(
            logging.handlers.TimedRotatingFileHandler(
                os.path.join(config.logging.log_dir, 'server.log'),
                # Rotate logs Sunday at midnight
                when='W6',
                atTime=datetime.time(hour=0, minute=0, second=0),
            ),
        )

    logging.basicConfig(
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
        level=config.logging.default_level,
        handlers=handlers,
        force=True,
    )
    for name in ('uvicorn', 'uvicorn.error', 'uvicorn.access'):
        logging.getLogger(name).setLevel(config.logging.access_level)


def load_config(config_path: str | None) -> ServerConfig:
    """Load a TOML config file (if given) and apply environment overrides."""
    base = None if config_path is None else ServerConfig.from_toml(config_path)
    return ServerConfig.from_env(base=base)


@click.group()
def cli() -> None:
    """Peer discovery and WebRTC signaling server."""
    pass


@cli.command()
def version() -> None:
    """Show the PeerTrack version."""
    click.echo(f'PeerTrack v{peertrack.__version__}')


@cli.command(name='config')
@click.option('--config', '-c', 'config_path', help='Configuration file.')
def show_config(config_path: str | None) -> None:
    """Print the effective configuration as TOML.

    Environment variable overrides are applied to the configuration file.
    """
    click.echo(load_config(config_path).to_toml(), nl=False)


@cli.command(name='serve')
@click.option('--config', '-c', 'config_path', help='Configuration file.')
@click.option('--host', metavar='ADDR', help='Interface to bind to.')
@click.option('--port', type=int, metavar='PORT', help='Port to bind to.')
@click.option(
    '--store',
    type=click.Choice(['memory', 'redis'], case_sensitive=False),
    help='Peer state store backend.',
)
@click.option('--log-dir', metavar='PATH', help='Logging directory.')
@click.option(
    '--log-level',
    type=click.Choice(
        ['CRITICAL', 'ERROR', 'WARNING', 'INFO', 'DEBUG'],
        case_sensitive=False,
    ),
    help='Minimum logging level.',
)
@click.option(
    '--uvloop/--no-uvloop',
    'use_uvloop',
    default=True,
    help='Install uvloop as the default event loop.',
)
def serve_command(
    config_path: str | None,
    host: str | None,
    port: int | None,
    store: str | None,
    log_dir: str | None,
    log_level: str | None,
    use_uvloop: bool,
) -> None:
    """Run a signaling server instance.

    Configuration is read from the optional configuration file, then
    environment variables, then the remaining CLI options, with later
    sources overriding earlier ones.
    """
    config = load_config(config_path)

    # Override config with CLI options if given
    if host is not None:
        config.host = host
    if port is not None:
        config.port = port
    if store is not None:
        config.store.backend = store.lower()  # type: ignore[assignment]
    if log_dir is not None:
        config.logging.log_dir = log_dir
    if log_level is not None:
        config.logging.default_level = log_level.upper()

    configure_logging(config)

    if config.store.backend == 'memory':
        logger.warning(
            'Using the in-memory store. State will not be shared between '
            'server processes',
        )

    if use_uvloop:  # pragma: no cover
        logger.info('Installing uvloop as default event loop')
        uvloop.install()

    asyncio.run(serve(config))
