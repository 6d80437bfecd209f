"""In-process view of the remote preview channel pool and its eviction policy."""

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from previewflow.exceptions import DeploymentError, WorkflowError, wrap
from previewflow.hosting.channels import ChannelApi, PreviewChannel
from previewflow.tracker import ErrorTracker

logger = logging.getLogger(__name__)


@dataclass
class EvictionResult:
    """Outcome of one eviction pass for a site."""

    site: str
    kept: list[PreviewChannel]
    deleted_count: int = 0
    failed_deletions: list[PreviewChannel] = field(default_factory=list)
    # Channels that would be or were scheduled for deletion
    scheduled: list[PreviewChannel] = field(default_factory=list)
    dry_run: bool = False


@dataclass
class SiteChannels:
    """Snapshot of one site's channels for the dashboard."""

    site: str
    current: list[PreviewChannel]
    evicted: list[PreviewChannel]


def _newest_first(channels: list[PreviewChannel]) -> list[PreviewChannel]:
    return sorted(channels, key=lambda c: c.created_at, reverse=True)


class ChannelRegistry:
    """Per-site channels, newest first.

    The remote API is the source of truth: refresh() always replaces the
    local view, nothing is carried over between runs.
    """

    def __init__(self, api: ChannelApi, tracker: ErrorTracker | None = None) -> None:
        self.api = api
        self.tracker = tracker if tracker is not None else ErrorTracker()
        self._channels: dict[str, list[PreviewChannel]] = {}
        self._evicted: dict[str, list[PreviewChannel]] = {}

    def channels(self, site: str) -> list[PreviewChannel]:
        return list(self._channels.get(site, []))

    def evicted(self, site: str) -> list[PreviewChannel]:
        return list(self._evicted.get(site, []))

    @property
    def sites(self) -> list[str]:
        return list(dict.fromkeys([*self._channels, *self._evicted]))

    async def refresh(self, site: str) -> list[PreviewChannel]:
        """Replace the view of a site with the full remote list."""
        remote = await self.api.list_channels(site)
        self._channels[site] = _newest_first(remote)
        logger.debug("Site %s has %d channel(s)", site, len(remote))
        return self.channels(site)

    async def _delete(self, channel: PreviewChannel) -> None:
        await self.api.delete_channel(channel.site, channel.id)

    def _record(self, outcome: BaseException, context: str) -> None:
        """Record a failure as a non-fatal deployment error of the channels phase."""
        error = wrap(outcome, phase="channels")
        if not isinstance(outcome, DeploymentError):
            error = DeploymentError(f"{context}: {error.message}", phase="channels", cause=outcome)
        self.tracker.record(error)

    async def evict(self, site: str, keep: int, *, dry_run: bool = False) -> EvictionResult:
        """Delete every channel of a site beyond the newest ``keep``.

        Deletions run concurrently and are joined before returning. A failed
        deletion is recorded as a non-fatal deployment error and leaves the
        channel in the current view.

        Args:
            site: Site label.
            keep: Number of most recent channels to retain.
            dry_run: Report the plan without calling the API.

        Returns:
            EvictionResult with kept channels, deletions and failures.

        Raises:
            ValueError: If keep is negative.
        """
        if keep < 0:
            raise ValueError(f"keep must be >= 0, got {keep}")

        ordered = _newest_first(self._channels.get(site, []))
        kept, to_delete = ordered[:keep], ordered[keep:]
        result = EvictionResult(site=site, kept=kept, scheduled=to_delete, dry_run=dry_run)

        if not to_delete:
            logger.debug("Nothing to evict for %s (%d <= %d)", site, len(ordered), keep)
            return result

        if dry_run:
            logger.info("Would delete %d channel(s) from %s", len(to_delete), site)
            return result

        outcomes = await asyncio.gather(
            *(self._delete(channel) for channel in to_delete),
            return_exceptions=True,
        )

        survivors: list[PreviewChannel] = []
        evicted = self._evicted.setdefault(site, [])
        for channel, outcome in zip(to_delete, outcomes, strict=True):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                self._record(outcome, f"Failed to delete channel {channel.id} from {site}")
                result.failed_deletions.append(channel)
                survivors.append(channel)
            else:
                result.deleted_count += 1
                evicted.append(channel)

        self._channels[site] = _newest_first([*kept, *survivors])
        logger.info(
            "Evicted %d channel(s) from %s (%d failed)",
            result.deleted_count,
            site,
            len(result.failed_deletions),
        )
        return result

    async def cleanup(
        self, sites: Iterable[str], keep: int, *, dry_run: bool = False
    ) -> list[EvictionResult]:
        """Refresh and evict each site in turn.

        A site whose listing fails is recorded like a failed deletion and
        skipped; the remaining sites are still cleaned.
        """
        results = []
        for site in sites:
            try:
                await self.refresh(site)
            except WorkflowError as e:
                self._record(e, f"Failed to list channels for {site}")
                continue
            results.append(await self.evict(site, keep, dry_run=dry_run))
        return results

    def snapshot(self) -> list[SiteChannels]:
        """Current and evicted channels per site, in first-seen site order."""
        return [
            SiteChannels(site=site, current=self.channels(site), evicted=self.evicted(site))
            for site in self.sites
        ]
