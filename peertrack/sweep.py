"""Periodic pruning of stale manifest membership."""
from __future__ import annotations

import asyncio
import dataclasses
import logging

from peertrack.constants import SWEEP_INTERVAL_DEFAULT
from peertrack.constants import SWEEP_MAX_RETRIES_DEFAULT
from peertrack.exceptions import ServiceUnavailableError
from peertrack.registry import Registry
from peertrack.utils.tasks import spawn_guarded_background_task

logger = logging.getLogger(__name__)


@dataclasses.dataclass
class SweepResult:
    """Outcome of one sweep cycle.

    Attributes:
        manifests: Number of manifests visited.
        pruned: Number of stale members removed.
        failed: Manifests skipped because the store failed mid-sweep.
    """

    manifests: int = 0
    pruned: int = 0
    failed: list[str] = dataclasses.field(default_factory=list)


class MembershipSweeper:
    """Prunes stale members of every manifest on a fixed interval.

    A manifest that fails is skipped and picked up again on the next cycle.
    If the manifest listing itself fails, the cycle is retried up to
    `max_retries` times with exponential backoff before giving up until the
    next interval.

    Args:
        registry: Registry to sweep.
        interval: Seconds between sweep cycles.
        max_retries: Retries of a failed cycle.
        backoff: Seconds to wait before the first retry. Doubles on each
            subsequent retry.
    """

    def __init__(
        self,
        registry: Registry,
        *,
        interval: float = SWEEP_INTERVAL_DEFAULT,
        max_retries: int = SWEEP_MAX_RETRIES_DEFAULT,
        backoff: float = 1.0,
    ) -> None:
        self.registry = registry
        self.interval = interval
        self.max_retries = max_retries
        self.backoff = backoff

    async def sweep_once(self) -> SweepResult:
        """Run one sweep over all manifests.

        Raises:
            ServiceUnavailableError: if the manifests cannot be listed.
        """
        result = SweepResult()
        for manifest_id in await self.registry.manifests():
            result.manifests += 1
            try:
                result.pruned += await self.registry.sweep_manifest(
                    manifest_id,
                )
            except ServiceUnavailableError as e:
                logger.warning(f'Skipping sweep of {manifest_id}: {e}')
                result.failed.append(manifest_id)
        return result

    async def sweep_with_retries(self) -> SweepResult | None:
        """Run one sweep, retrying if the store is unavailable.

        Returns:
            The sweep result or `None` if every attempt failed.
        """
        for attempt in range(self.max_retries + 1):
            try:
                result = await self.sweep_once()
            except ServiceUnavailableError as e:
                if attempt == self.max_retries:
                    logger.error(
                        f'Membership sweep failed after {attempt + 1} '
                        f'attempts: {e}',
                    )
                    return None
                delay = self.backoff * 2**attempt
                logger.warning(
                    f'Membership sweep failed ({e}), retrying in {delay}s',
                )
                await asyncio.sleep(delay)
            else:
                logger.info(
                    f'Swept {result.manifests} manifests, pruned '
                    f'{result.pruned} stale members',
                )
                return result
        raise AssertionError('Unreachable.')

    async def run(self) -> None:
        """Sweep forever, once per interval."""
        while True:
            await asyncio.sleep(self.interval)
            await self.sweep_with_retries()

    def start(self) -> asyncio.Task[None]:
        """Start sweeping in a guarded background task."""
        task = spawn_guarded_background_task(self.run)
        task.set_name('membership-sweeper')
        return task
