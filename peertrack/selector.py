"""Upload partner selection."""
from __future__ import annotations

import logging
from typing import Collection
from typing import Sequence

from peertrack.constants import MAX_PEERS_DEFAULT
from peertrack.models import PeerDescriptor
from peertrack.models import PeerScore
from peertrack.registry import Registry
from peertrack.scoring import score_all

logger = logging.getLogger(__name__)


class Selector:
    """Ranks the live peers of a manifest for a requester.

    Args:
        registry: Presence registry to read candidates from.
        max_peers: Default maximum number of peers returned.
        need_tier: Rank every peer holding a needed chunk above every peer
            that holds none, regardless of the remaining factors.
    """

    def __init__(
        self,
        registry: Registry,
        *,
        max_peers: int = MAX_PEERS_DEFAULT,
        need_tier: bool = False,
    ) -> None:
        if max_peers < 1:
            raise ValueError('max_peers must be >= 1.')
        self.registry = registry
        self.max_peers = max_peers
        self.need_tier = need_tier

    def _rank(self, scores: list[PeerScore]) -> list[PeerScore]:
        # sorted() is stable so ties keep fetch order
        if self.need_tier:
            return sorted(
                scores,
                key=lambda s: (s.has_needed, s.score),
                reverse=True,
            )
        return sorted(scores, key=lambda s: s.score, reverse=True)

    async def select(
        self,
        manifest_id: str,
        needed_chunks: Sequence[int],
        region: str | None = None,
        exclude: Collection[str] = (),
        limit: int | None = None,
    ) -> list[PeerDescriptor]:
        """Select up to `limit` good peers for a requester.

        Reading candidates prunes stale members from the manifest
        membership set as a side effect.

        Args:
            manifest_id: Manifest the requester is downloading.
            needed_chunks: Chunk indices the requester is missing.
            region: Optional requester region.
            exclude: Peer IDs that must not be returned (e.g., the
                requester itself or peers it is already connected to).
            limit: Maximum number of peers. Defaults to `max_peers`.

        Returns:
            Peers sorted by non-increasing score. Empty if the manifest has
            no live candidates.

        Raises:
            ValueError: if `limit` is negative.
        """
        if limit is not None and limit < 0:
            raise ValueError('limit must be >= 0.')
        limit = self.max_peers if limit is None else min(limit, self.max_peers)
        excluded = set(exclude)

        members = await self.registry.list_members(manifest_id)
        candidates = [pid for pid in members if pid not in excluded]
        if len(candidates) == 0:
            logger.debug(f'No candidate peers for manifest {manifest_id}')
            return []

        records = await self.registry.fetch_many(manifest_id, candidates)
        scores = score_all(records, needed_chunks, region)
        ranked = self._rank(scores)[:limit]

        logger.debug(
            f'Scored {len(scores)} peers for manifest {manifest_id}: '
            + ', '.join(f'{s.peer_id}={s.score:.1f}' for s in scores),
        )

        by_id = {record.peer_id: record for record in records}
        return [
            PeerDescriptor(
                peer_id=score.peer_id,
                chunk_bitfield=by_id[score.peer_id].chunk_bitfield,
                region=by_id[score.peer_id].region,
                score=score.score,
                has_needed=score.has_needed,
            )
            for score in ranked
        ]
