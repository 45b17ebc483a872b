"""Transport independent signaling service operations.

The [`PeerTrackService`][peertrack.service.PeerTrackService] validates
request fields and dispatches to the registry, selector, and relay. It
holds no mutable state of its own; everything lives in the injected peer
state store.
"""
from __future__ import annotations

import logging
import time
from typing import Any
from typing import Callable

from peertrack.bitfield import count_chunks
from peertrack.bitfield import decode_bitfield
from peertrack.constants import MAX_PEERS_DEFAULT
from peertrack.constants import PEER_TTL_DEFAULT
from peertrack.constants import SIGNAL_TTL_DEFAULT
from peertrack.exceptions import InvalidRequestError
from peertrack.exceptions import ServiceUnavailableError
from peertrack.models import PeerRecord
from peertrack.models import SignalMessage
from peertrack.registry import Registry
from peertrack.relay import SignalRelay
from peertrack.selector import Selector
from peertrack.store.protocols import PeerStateStore
from peertrack.turn import TurnCredentialIssuer

logger = logging.getLogger(__name__)


def _require_str(name: str, value: Any) -> str:
    if not isinstance(value, str) or len(value) == 0:
        raise InvalidRequestError(f'Missing required field: {name}.')
    return value


def _optional_str(name: str, value: Any) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidRequestError(f'Field {name} must be a string.')
    return value or None


def _optional_int(name: str, value: Any) -> int | None:
    if value is None:
        return None
    # bool is a subclass of int
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidRequestError(
            f'Field {name} must be a non-negative integer.',
        )
    return value


def _int_list(name: str, value: Any) -> list[int]:
    if not isinstance(value, list) or not all(
        isinstance(item, int) and not isinstance(item, bool) and item >= 0
        for item in value
    ):
        raise InvalidRequestError(
            f'Field {name} must be a list of non-negative integers.',
        )
    return value


def _str_list(name: str, value: Any) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(
        isinstance(item, str) for item in value
    ):
        raise InvalidRequestError(f'Field {name} must be a list of strings.')
    return value


class PeerTrackService:
    """Signaling service operations.

    Args:
        store: Shared peer state store. The service takes ownership and
            closes it in [`close()`][peertrack.service.PeerTrackService.close].
        peer_ttl: Seconds a presence record is valid after an announce.
        max_peers: Maximum peers returned by a selection.
        signal_ttl: Seconds undelivered signaling messages are kept.
        need_tier: Always rank peers holding a needed chunk first.
        turn: Optional TURN credential issuer.
        clock: Zero argument callable returning the current UNIX time in
            seconds.
    """

    def __init__(
        self,
        store: PeerStateStore,
        *,
        peer_ttl: int = PEER_TTL_DEFAULT,
        max_peers: int = MAX_PEERS_DEFAULT,
        signal_ttl: int = SIGNAL_TTL_DEFAULT,
        need_tier: bool = False,
        turn: TurnCredentialIssuer | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store

        def clock_ms() -> int:
            return int(clock() * 1000)

        self.registry = Registry(store, ttl=peer_ttl, clock=clock_ms)
        self.selector = Selector(
            self.registry,
            max_peers=max_peers,
            need_tier=need_tier,
        )
        self.relay = SignalRelay(store, ttl=signal_ttl, clock=clock_ms)
        self.turn = TurnCredentialIssuer(None) if turn is None else turn
        self._clock = clock
        self._started = time.monotonic()

    async def announce(
        self,
        client_id: Any,
        manifest_id: Any,
        chunk_bitfield: Any,
        up_cap: Any = None,
        region: Any = None,
        rtt_hint: Any = None,
        version: Any = None,
    ) -> dict[str, Any]:
        """Register or refresh a peer's presence for a manifest.

        Returns:
            `{success, peerId, ttl}`.

        Raises:
            InvalidRequestError: if a required field is missing or a field
                is malformed.
        """
        peer_id = _require_str('clientId', client_id)
        manifest_id = _require_str('manifestId', manifest_id)
        chunk_bitfield = _require_str('chunkBitfield', chunk_bitfield)
        try:
            chunks = count_chunks(decode_bitfield(chunk_bitfield))
        except ValueError as e:
            raise InvalidRequestError(str(e)) from e

        record = PeerRecord(
            peer_id=peer_id,
            manifest_id=manifest_id,
            chunk_bitfield=chunk_bitfield,
            up_cap=_optional_int('upCap', up_cap) or 0,
            region=_optional_str('region', region),
            rtt_hint=_optional_int('rttHint', rtt_hint),
            version=_optional_str('version', version),
        )
        ttl = await self.registry.upsert(record)
        logger.debug(
            f'Peer {peer_id} announced {chunks} chunks of {manifest_id}',
        )
        return {'success': True, 'peerId': peer_id, 'ttl': ttl}

    async def get_peers(
        self,
        manifest_id: Any,
        needed_chunks: Any,
        region: Any = None,
        exclude_peers: Any = None,
    ) -> dict[str, Any]:
        """Select good upload partners for a requester.

        Returns:
            `{peers, count}`. An unknown manifest yields no peers.

        Raises:
            InvalidRequestError: if a required field is missing or a field
                is malformed.
        """
        manifest_id = _require_str('manifestId', manifest_id)
        if needed_chunks is None:
            raise InvalidRequestError('Missing required field: neededChunks.')
        needed = _int_list('neededChunks', needed_chunks)

        peers = await self.selector.select(
            manifest_id,
            needed,
            region=_optional_str('region', region),
            exclude=_str_list('excludePeers', exclude_peers),
        )
        logger.debug(
            f'Returning {len(peers)} peers for manifest {manifest_id}',
        )
        return {
            'peers': [peer.to_dict() for peer in peers],
            'count': len(peers),
        }

    async def complete(
        self,
        client_id: Any,
        manifest_id: Any,
    ) -> dict[str, Any]:
        """Mark a peer as a complete seeder of a manifest.

        Raises:
            InvalidRequestError: if a required field is missing.
            NotFoundError: if the peer has no live record.
        """
        peer_id = _require_str('clientId', client_id)
        manifest_id = _require_str('manifestId', manifest_id)
        await self.registry.mark_complete(manifest_id, peer_id)
        logger.info(f'Peer {peer_id} completed manifest {manifest_id}')
        return {'success': True}

    async def signal(
        self,
        sender: str,
        signal_type: Any,
        to: Any,
        payload: Any = None,
    ) -> dict[str, Any]:
        """Queue a handshake message for another peer.

        Raises:
            InvalidRequestError: if the type or recipient is missing or the
                type is not a known signal type.
        """
        message = SignalMessage(
            type=_require_str('type', signal_type),
            sender=sender,
            recipient=_require_str('to', to),
            payload=payload,
            timestamp=int(self._clock() * 1000),
        )
        await self.relay.enqueue(message)
        return {'success': True, 'message': 'Signal queued for delivery'}

    async def poll_signals(self, client_id: Any) -> dict[str, Any]:
        """Collect every pending handshake message for a peer.

        Raises:
            InvalidRequestError: if the client ID is missing.
        """
        recipient = _require_str('clientId', client_id)
        messages = await self.relay.drain_for(recipient)
        return {'signals': [message.to_dict() for message in messages]}

    def turn_credentials(self, identity: str) -> dict[str, Any]:
        """Mint TURN credentials for an authenticated identity.

        Raises:
            ServiceUnavailableError: if no TURN secret is configured.
        """
        return self.turn.issue(identity).to_dict()

    async def health(self) -> dict[str, Any]:
        """Check the store connection.

        Returns:
            `{status, storeStatus, timestamp}` where status is `ok` or
            `error`. On error an `error` key describes the failure.
        """
        timestamp = int(self._clock() * 1000)
        try:
            await self.store.ping()
        except ServiceUnavailableError as e:
            return {
                'status': 'error',
                'storeStatus': 'disconnected',
                'timestamp': timestamp,
                'error': str(e),
            }
        return {
            'status': 'ok',
            'storeStatus': 'connected',
            'timestamp': timestamp,
        }

    async def metrics(self) -> str:
        """Render Prometheus text format gauges."""
        manifests = await self.registry.count_manifests()
        peers = await self.registry.count_peers()
        uptime = time.monotonic() - self._started
        return (
            '# HELP signaling_manifests_total Total number of active '
            'manifests\n'
            '# TYPE signaling_manifests_total gauge\n'
            f'signaling_manifests_total {manifests}\n'
            '\n'
            '# HELP signaling_peers_total Total number of active peers\n'
            '# TYPE signaling_peers_total gauge\n'
            f'signaling_peers_total {peers}\n'
            '\n'
            '# HELP signaling_uptime_seconds Server uptime in seconds\n'
            '# TYPE signaling_uptime_seconds counter\n'
            f'signaling_uptime_seconds {uptime:.3f}\n'
        )

    async def close(self) -> None:
        """Close the underlying store."""
        await self.store.close()
