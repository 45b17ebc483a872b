from __future__ import annotations

from typing import Any
from unittest import mock

import pytest

from peertrack.exceptions import InvalidRequestError
from peertrack.exceptions import NotFoundError
from peertrack.exceptions import ServiceUnavailableError
from peertrack.service import PeerTrackService
from peertrack.store.protocols import PeerStateStore
from peertrack.turn import TurnCredentialIssuer
from testing.bitfield import encode_bitfield
from testing.clock import ManualClock


@pytest.fixture()
def service(store: PeerStateStore, clock: ManualClock) -> PeerTrackService:
    return PeerTrackService(
        store,
        peer_ttl=300,
        signal_ttl=30,
        turn=TurnCredentialIssuer('secret', turn_urls=['turn:x'], clock=clock),
        clock=clock,
    )


def _announce_args(**kwargs: Any) -> dict[str, Any]:
    args: dict[str, Any] = {
        'client_id': 'a',
        'manifest_id': 'm',
        'chunk_bitfield': encode_bitfield([0, 1]),
    }
    args.update(kwargs)
    return args


@pytest.mark.asyncio()
async def test_announce(service: PeerTrackService) -> None:
    result = await service.announce(**_announce_args(region='eu'))
    assert result == {'success': True, 'peerId': 'a', 'ttl': 300}

    record = await service.registry.get('m', 'a')
    assert record is not None
    assert record.region == 'eu'


@pytest.mark.asyncio()
@pytest.mark.parametrize(
    'kwargs',
    (
        {'client_id': None},
        {'client_id': ''},
        {'manifest_id': None},
        {'chunk_bitfield': None},
        {'chunk_bitfield': 'not a bitfield!'},
        {'up_cap': -1},
        {'up_cap': 'fast'},
        {'up_cap': True},
        {'rtt_hint': 1.5},
        {'region': 5},
    ),
)
async def test_announce_invalid(
    service: PeerTrackService,
    store: PeerStateStore,
    kwargs: dict[str, Any],
) -> None:
    with pytest.raises(InvalidRequestError):
        await service.announce(**_announce_args(**kwargs))
    assert await store.keys('*') == []


@pytest.mark.asyncio()
async def test_get_peers_end_to_end(service: PeerTrackService) -> None:
    await service.announce(**_announce_args(client_id='a'))
    await service.announce(
        **_announce_args(client_id='b', chunk_bitfield=encode_bitfield([7])),
    )

    result = await service.get_peers('m', [1], exclude_peers=['requester'])
    assert result['count'] == 2
    first, second = result['peers']
    assert first['peerId'] == 'a'
    assert first['hasNeeded']
    assert first['score'] >= 100
    assert second['peerId'] == 'b'
    assert not second['hasNeeded']
    assert second['score'] < 100


@pytest.mark.asyncio()
async def test_get_peers_unknown_manifest(service: PeerTrackService) -> None:
    assert await service.get_peers('m', []) == {'peers': [], 'count': 0}


@pytest.mark.asyncio()
async def test_get_peers_excludes(service: PeerTrackService) -> None:
    await service.announce(**_announce_args(client_id='a'))
    result = await service.get_peers('m', [0], exclude_peers=['a'])
    assert result == {'peers': [], 'count': 0}


@pytest.mark.asyncio()
@pytest.mark.parametrize(
    ('manifest_id', 'needed', 'exclude'),
    (
        (None, [0], None),
        ('m', None, None),
        ('m', [-1], None),
        ('m', ['0'], None),
        ('m', 5, None),
        ('m', [0], 'a'),
        ('m', [0], [1]),
    ),
)
async def test_get_peers_invalid(
    service: PeerTrackService,
    manifest_id: Any,
    needed: Any,
    exclude: Any,
) -> None:
    with pytest.raises(InvalidRequestError):
        await service.get_peers(manifest_id, needed, exclude_peers=exclude)


@pytest.mark.asyncio()
async def test_complete(service: PeerTrackService) -> None:
    await service.announce(**_announce_args())
    assert await service.complete('a', 'm') == {'success': True}

    result = await service.get_peers('m', [5])
    assert result['peers'][0]['score'] >= 20


@pytest.mark.asyncio()
async def test_complete_unknown_peer(service: PeerTrackService) -> None:
    with pytest.raises(NotFoundError):
        await service.complete('a', 'm')
    with pytest.raises(InvalidRequestError):
        await service.complete(None, 'm')


@pytest.mark.asyncio()
async def test_signal_and_poll(
    service: PeerTrackService,
    clock: ManualClock,
) -> None:
    result = await service.signal('a', 'offer', 'b', {'sdp': 'v=0'})
    assert result == {'success': True, 'message': 'Signal queued for delivery'}

    polled = await service.poll_signals('b')
    assert polled == {
        'signals': [
            {
                'type': 'offer',
                'from': 'a',
                'to': 'b',
                'data': {'sdp': 'v=0'},
                'timestamp': clock.millis(),
            },
        ],
    }
    assert await service.poll_signals('b') == {'signals': []}


@pytest.mark.asyncio()
@pytest.mark.parametrize(
    ('signal_type', 'to'),
    ((None, 'b'), ('offer', None), ('bogus', 'b')),
)
async def test_signal_invalid(
    service: PeerTrackService,
    store: PeerStateStore,
    signal_type: Any,
    to: Any,
) -> None:
    with pytest.raises(InvalidRequestError):
        await service.signal('a', signal_type, to)
    assert await store.keys('*') == []


@pytest.mark.asyncio()
async def test_signals_expire(
    service: PeerTrackService,
    clock: ManualClock,
) -> None:
    await service.signal('a', 'answer', 'b')
    clock.advance(31)
    assert await service.poll_signals('b') == {'signals': []}


@pytest.mark.asyncio()
async def test_turn_credentials(
    service: PeerTrackService,
    clock: ManualClock,
) -> None:
    credentials = service.turn_credentials('a')
    assert credentials['username'] == f'{int(clock()) + 3600}:a'
    assert credentials['uris'] == ['turn:x']


@pytest.mark.asyncio()
async def test_turn_credentials_unconfigured(
    store: PeerStateStore,
) -> None:
    service = PeerTrackService(store)
    with pytest.raises(ServiceUnavailableError):
        service.turn_credentials('a')


@pytest.mark.asyncio()
async def test_health(service: PeerTrackService, clock: ManualClock) -> None:
    assert await service.health() == {
        'status': 'ok',
        'storeStatus': 'connected',
        'timestamp': clock.millis(),
    }


@pytest.mark.asyncio()
async def test_health_store_down(service: PeerTrackService) -> None:
    with mock.patch.object(
        service.store,
        'ping',
        mock.AsyncMock(side_effect=ServiceUnavailableError('down')),
    ):
        result = await service.health()

    assert result['status'] == 'error'
    assert result['storeStatus'] == 'disconnected'
    assert result['error'] == 'down'


@pytest.mark.asyncio()
async def test_metrics(service: PeerTrackService) -> None:
    await service.announce(**_announce_args(client_id='a', manifest_id='m1'))
    await service.announce(**_announce_args(client_id='b', manifest_id='m1'))
    await service.announce(**_announce_args(client_id='a', manifest_id='m2'))

    text = await service.metrics()
    lines = text.splitlines()
    assert 'signaling_manifests_total 2' in lines
    assert 'signaling_peers_total 3' in lines
    assert '# TYPE signaling_peers_total gauge' in lines
    assert any(line.startswith('signaling_uptime_seconds ') for line in lines)
