"""Ephemeral peer presence registry.

Each announced peer has a presence record stored under
`peer:{manifest_id}:{peer_id}` which expires unless refreshed. The set
`peers:{manifest_id}` indexes the peers of a manifest so that selection
does not scan every record. The membership set may over-approximate
(contain peers whose record already expired) but never misses a live peer.
Stale members are pruned lazily by readers and by the periodic sweep in
[`peertrack.sweep`][peertrack.sweep].
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable
from typing import Sequence

from peertrack.constants import PEER_TTL_DEFAULT
from peertrack.exceptions import NotFoundError
from peertrack.models import decode_peer_record
from peertrack.models import encode_model
from peertrack.models import ModelDecodeError
from peertrack.models import PeerRecord
from peertrack.store.protocols import PeerStateStore

logger = logging.getLogger(__name__)

MEMBERSHIP_PREFIX = 'peers:'


def peer_key(manifest_id: str, peer_id: str) -> str:
    """Store key of a presence record."""
    return f'peer:{manifest_id}:{peer_id}'


def membership_key(manifest_id: str) -> str:
    """Store key of a manifest membership set."""
    return f'{MEMBERSHIP_PREFIX}{manifest_id}'


def _now_ms() -> int:
    return int(time.time() * 1000)


class Registry:
    """Presence registry on top of a peer state store.

    The registry keeps no state of its own so any number of service
    replicas can share one store.

    Args:
        store: Shared peer state store.
        ttl: Default validity window of presence records in seconds.
        clock: Zero argument callable returning the current time in
            milliseconds since the epoch. Used to stamp `last_seen`.
    """

    def __init__(
        self,
        store: PeerStateStore,
        *,
        ttl: int = PEER_TTL_DEFAULT,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self.store = store
        self.ttl = ttl
        self._clock = clock

    async def upsert(self, record: PeerRecord, ttl: int | None = None) -> int:
        """Write or refresh a presence record.

        The record is stamped with the current time and written with the
        given expiry. The peer is then added to the manifest membership set
        whose expiry is extended to `max(current, ttl)` so that a short
        write never cuts an earlier long one short. Re-announcing is
        idempotent.

        Args:
            record: Record to write. `last_seen` is overwritten.
            ttl: Validity window in seconds. Defaults to the registry TTL.

        Returns:
            The TTL the record was written with.
        """
        ttl = self.ttl if ttl is None else ttl
        record.last_seen = self._clock()
        await self.store.set(
            peer_key(record.manifest_id, record.peer_id),
            encode_model(record),
            ttl,
        )

        set_key = membership_key(record.manifest_id)
        await self.store.set_add(set_key, record.peer_id)
        await self.store.extend_expiry(set_key, ttl)
        return ttl

    async def get(self, manifest_id: str, peer_id: str) -> PeerRecord | None:
        """Get the live record of a peer or `None` if absent or expired."""
        data = await self.store.get(peer_key(manifest_id, peer_id))
        if data is None:
            return None
        try:
            return decode_peer_record(data)
        except ModelDecodeError as e:
            logger.warning(
                f'Ignoring undecodable record for peer {peer_id} in '
                f'manifest {manifest_id}: {e}',
            )
            return None

    async def mark_complete(
        self,
        manifest_id: str,
        peer_id: str,
        ttl: int | None = None,
    ) -> PeerRecord:
        """Mark a peer as holding the complete manifest.

        Args:
            manifest_id: Manifest of the peer.
            peer_id: Peer to mark.
            ttl: Validity window in seconds. Defaults to the registry TTL.

        Returns:
            The updated record.

        Raises:
            NotFoundError: if the peer has no live record. Callers should
                treat this as the peer's presence having lapsed and
                re-announce.
        """
        record = await self.get(manifest_id, peer_id)
        if record is None:
            raise NotFoundError(
                f'Peer {peer_id} has no live record for manifest '
                f'{manifest_id}.',
            )
        record.is_complete = True
        record.last_seen = self._clock()
        await self.store.set(
            peer_key(manifest_id, peer_id),
            encode_model(record),
            self.ttl if ttl is None else ttl,
        )
        return record

    async def list_members(self, manifest_id: str) -> list[str]:
        """List peers in the membership set of a manifest.

        Note:
            The list can contain peers whose record already expired.
        """
        return await self.store.set_members(membership_key(manifest_id))

    async def fetch_many(
        self,
        manifest_id: str,
        peer_ids: Sequence[str],
    ) -> list[PeerRecord]:
        """Fetch the live records of many peers.

        Peers with no live record are removed from the membership set and
        omitted from the result.

        Returns:
            Live records in the same order as `peer_ids`.
        """
        records = await asyncio.gather(
            *(self._fetch_or_prune(manifest_id, pid) for pid in peer_ids),
        )
        return [record for record in records if record is not None]

    async def _fetch_or_prune(
        self,
        manifest_id: str,
        peer_id: str,
    ) -> PeerRecord | None:
        record = await self.get(manifest_id, peer_id)
        if record is None:
            logger.debug(
                f'Pruning stale member {peer_id} of manifest {manifest_id}',
            )
            await self.store.set_remove(membership_key(manifest_id), peer_id)
        return record

    async def manifests(self) -> list[str]:
        """List manifests that currently have a membership set."""
        keys = await self.store.keys(f'{MEMBERSHIP_PREFIX}*')
        return [key[len(MEMBERSHIP_PREFIX) :] for key in keys]

    async def sweep_manifest(self, manifest_id: str) -> int:
        """Prune every stale member of a manifest.

        Returns:
            Number of members removed.
        """
        members = await self.list_members(manifest_id)
        live = await self.fetch_many(manifest_id, members)
        return len(members) - len(live)

    async def count_manifests(self) -> int:
        """Count manifests with a membership set."""
        return len(await self.manifests())

    async def count_peers(self) -> int:
        """Count members across all manifests (including stale members)."""
        total = 0
        for manifest_id in await self.manifests():
            total += await self.store.set_size(membership_key(manifest_id))
        return total
