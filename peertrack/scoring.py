"""Peer scoring.

A candidate's score is the plain sum of five independent factors so the
point ranges fix the relative weighting:

| Factor | Points |
| ------ | ------ |
| `hasNeeded` | 0 or 100 |
| `region` | 0, 10, or 30 |
| `latency` | 5 to 30 |
| `capacity` | 0 to 20 |
| `completion` | 0 or 20 |

The need factor dominates so a peer without any useful chunk should
essentially never outrank one that has some.
"""
from __future__ import annotations

from typing import Iterable
from typing import Sequence

from peertrack.bitfield import decode_bitfield
from peertrack.bitfield import has_any_chunk
from peertrack.constants import MISSING_RTT_MS
from peertrack.models import PeerRecord
from peertrack.models import PeerScore

NEED_POINTS = 100
REGION_MATCH_POINTS = 30
REGION_KNOWN_POINTS = 10
COMPLETION_POINTS = 20
CAPACITY_MAX_POINTS = 20.0

_LATENCY_BANDS = ((50, 30), (100, 20), (200, 10))
_LATENCY_FLOOR_POINTS = 5


def has_needed_chunks(bitfield: str, needed_chunks: Iterable[int]) -> bool:
    """Check if an encoded bitfield holds any of the needed chunks.

    Empty or undecodable bitfields hold nothing.
    """
    if not bitfield:
        return False
    try:
        data = decode_bitfield(bitfield)
    except ValueError:
        return False
    return has_any_chunk(data, needed_chunks)


def region_score(peer_region: str | None, requester_region: str | None) -> int:
    """Score region affinity between a candidate and the requester."""
    if not peer_region:
        return 0
    if requester_region and peer_region == requester_region:
        return REGION_MATCH_POINTS
    return REGION_KNOWN_POINTS


def latency_score(rtt: int | None) -> int:
    """Score a round trip time hint. Lower RTTs score higher."""
    rtt = MISSING_RTT_MS if rtt is None else rtt
    for limit, points in _LATENCY_BANDS:
        if rtt < limit:
            return points
    return _LATENCY_FLOOR_POINTS


def capacity_score(up_cap: int | None) -> float:
    """Score upload capacity as MiB/s, capped at 20 points."""
    return min((up_cap or 0) / 1024 / 1024, CAPACITY_MAX_POINTS)


def score_peer(
    peer: PeerRecord,
    needed_chunks: Sequence[int],
    requester_region: str | None = None,
) -> PeerScore:
    """Score a single candidate peer.

    Args:
        peer: Candidate presence record.
        needed_chunks: Chunk indices the requester is missing.
        requester_region: Optional region of the requester.

    Returns:
        Score with a per-factor breakdown.
    """
    has_needed = has_needed_chunks(peer.chunk_bitfield, needed_chunks)
    factors: dict[str, float] = {
        'hasNeeded': NEED_POINTS if has_needed else 0,
        'region': region_score(peer.region, requester_region),
        'latency': latency_score(peer.rtt_hint),
        'capacity': capacity_score(peer.up_cap),
        'completion': COMPLETION_POINTS if peer.is_complete else 0,
    }
    return PeerScore(
        peer_id=peer.peer_id,
        score=sum(factors.values()),
        factors=factors,
        has_needed=has_needed,
    )


def score_all(
    peers: Iterable[PeerRecord],
    needed_chunks: Sequence[int],
    requester_region: str | None = None,
) -> list[PeerScore]:
    """Score candidates, preserving input order."""
    return [
        score_peer(peer, needed_chunks, requester_region) for peer in peers
    ]
