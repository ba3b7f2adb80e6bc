"""Batch orchestrator: refresh a set of campaigns under one resource budget.

Campaigns are loaded, costed, and processed one at a time, cheapest first, so
that as many campaigns as possible complete before the shared quota runs out.
Progress flows to a :class:`ProgressChannel`; the batch always ends with
exactly one terminal event on that channel.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import date

import structlog

from analytics_refresh.budget.tracker import ResourceBudgetTracker
from analytics_refresh.config import Settings
from analytics_refresh.domain.errors import BatchSetupError, PersistenceError
from analytics_refresh.domain.models import (
    BYTES_PER_MB,
    BatchSummary,
    CampaignProgress,
    CampaignRef,
    CampaignResult,
    ContentLink,
)
from analytics_refresh.domain.types import RefreshStatus
from analytics_refresh.links import collect_links
from analytics_refresh.observability.metrics import (
    ACTIVE_BATCHES,
    CAMPAIGNS_REFRESHED,
    RESOURCE_USAGE,
)
from analytics_refresh.refresh.processor import CampaignProcessor, Scraper, utc_today
from analytics_refresh.refresh.progress import ProgressChannel
from analytics_refresh.resilience.retry import RetryPolicy, SleepFn
from analytics_refresh.scrapers.profiles import PlatformProfiles
from analytics_refresh.state_machine import CampaignStateMachine, RefreshEvent
from analytics_refresh.store.store import AnalyticsStore

logger = structlog.get_logger()

RESOURCE_SKIP_MESSAGE = "Skipped due to resource limits"

TRIGGER_MANUAL = "manual"
TRIGGER_SCHEDULED = "scheduled"


class BatchOrchestrator:
    """Runs refresh batches against the analytics store and scraper.

    The orchestrator itself is stateless between batches: every call to
    :meth:`run` creates its own resource tracker and progress map.

    Args:
        store: The analytics store.
        scraper: The platform scraper collaborator.
        profiles: Per-platform estimates and pacing.
        resource_limit_bytes: The provider quota.
        safety_fraction: Usable fraction of the quota.
        retry_policy: Retry policy for each scrape call.
        inter_campaign_delay: Pause between consecutive campaigns, in seconds.
        retry_sleep: Optional sleep used for retry backoff.
        today: Returns the ``date_recorded`` for per-URL upserts.
        record_logs: Write a refresh-log entry for every batch.
    """

    def __init__(
        self,
        store: AnalyticsStore,
        scraper: Scraper,
        profiles: PlatformProfiles,
        *,
        resource_limit_bytes: int,
        safety_fraction: float,
        retry_policy: RetryPolicy | None = None,
        inter_campaign_delay: float = 10.0,
        retry_sleep: SleepFn | None = None,
        today: Callable[[], date] = utc_today,
        record_logs: bool = True,
    ) -> None:
        self._store = store
        self._scraper = scraper
        self._profiles = profiles
        self._resource_limit_bytes = resource_limit_bytes
        self._safety_fraction = safety_fraction
        self._retry_policy = retry_policy or RetryPolicy()
        self._inter_campaign_delay = inter_campaign_delay
        self._retry_sleep = retry_sleep
        self._today = today
        self._record_logs = record_logs

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: AnalyticsStore,
        scraper: Scraper,
        profiles: PlatformProfiles,
    ) -> BatchOrchestrator:
        """Build an orchestrator from application settings."""
        return cls(
            store,
            scraper,
            profiles,
            resource_limit_bytes=settings.resource_limit_bytes,
            safety_fraction=settings.resource_safety_fraction,
            retry_policy=RetryPolicy(
                max_attempts=settings.retry_max_attempts,
                base_delay=settings.retry_base_delay,
            ),
            inter_campaign_delay=settings.inter_campaign_delay,
        )

    async def run(
        self,
        campaign_ids: Iterable[str],
        channel: ProgressChannel,
        trigger_type: str = TRIGGER_MANUAL,
    ) -> BatchSummary | None:
        """Run one refresh batch, streaming progress to *channel*.

        Args:
            campaign_ids: The campaigns to refresh.
            channel: Receives progress and exactly one terminal event.
            trigger_type: ``"manual"`` or ``"scheduled"``, recorded in the log.

        Returns:
            The batch summary, or ``None`` if the batch could not be set up.
        """
        ACTIVE_BATCHES.inc()
        try:
            return await self._run(list(campaign_ids), channel, trigger_type)
        except Exception:
            logger.exception("Refresh batch crashed")
            if not channel.closed:
                channel.fail("Refresh failed unexpectedly")
            return None
        finally:
            ACTIVE_BATCHES.dec()

    async def _run(
        self,
        campaign_ids: list[str],
        channel: ProgressChannel,
        trigger_type: str,
    ) -> BatchSummary | None:
        log = logger.bind(trigger_type=trigger_type)

        try:
            loads = self._store.load_campaigns(campaign_ids)
            if not loads:
                raise BatchSetupError("No campaigns found")
        except BatchSetupError as exc:
            log.error("Refresh batch setup failed", error=str(exc))
            channel.fail(str(exc))
            return None

        tracker = ResourceBudgetTracker(
            limit_bytes=self._resource_limit_bytes,
            safety_fraction=self._safety_fraction,
            estimates=self._profiles.estimates(),
        )
        planned = [(load.campaign, collect_links(load.content_urls)) for load in loads]
        # Stable sort: equally priced campaigns keep request order.
        planned.sort(key=lambda item: tracker.estimate_links(item[1]))

        log_id = self._open_log(trigger_type)
        log.info(
            "Refresh batch started",
            campaigns=len(planned),
            estimated_mb=round(
                sum(tracker.estimate_links(links) for _, links in planned) / BYTES_PER_MB, 2
            ),
        )

        processor = CampaignProcessor(
            self._scraper,
            self._store,
            tracker,
            self._profiles,
            self._retry_policy,
            emit=channel.emit_progress,
            token=channel.token,
            retry_sleep=self._retry_sleep,
            today=self._today,
        )

        progress_by_campaign: dict[str, CampaignProgress] = {}
        skipped = 0
        cancelled = False

        for index, (campaign, links) in enumerate(planned):
            if channel.cancel_requested:
                cancelled = True
                break

            if not tracker.can_admit(tracker.estimate_links(links)):
                skipped = self._skip_remaining(planned[index:], progress_by_campaign, channel)
                log.warning("Resource limit reached, skipping remaining campaigns", skipped=skipped)
                break

            progress = CampaignProgress.for_campaign(campaign)
            progress_by_campaign[campaign.id] = progress
            try:
                outcome = await processor.process(progress, links)
            except Exception as exc:
                logger.exception("Campaign processing crashed", campaign_id=campaign.id)
                if not progress.is_terminal:
                    CampaignStateMachine(progress).trigger(RefreshEvent.FAIL, error=str(exc))
                    channel.emit_progress(progress)
                continue

            if outcome.cancelled:
                cancelled = True
                break
            if index < len(planned) - 1 and not tracker.limit_reached:
                await channel.token.sleep(self._inter_campaign_delay)

        summary = self._summarize(progress_by_campaign, tracker, skipped, cancelled)
        RESOURCE_USAGE.set(tracker.consumed_bytes)
        self._close_log(log_id, summary)
        log.info(
            "Refresh batch finished",
            total=summary.total,
            successful=summary.successful,
            failed=summary.failed,
            skipped=summary.skipped,
            resource_usage_mb=summary.resource_usage_mb,
            resource_limit_reached=summary.resource_limit_reached,
            cancelled=summary.cancelled,
        )
        channel.complete(summary)
        return summary

    @staticmethod
    def _skip_remaining(
        remaining: list[tuple[CampaignRef, list[ContentLink]]],
        progress_by_campaign: dict[str, CampaignProgress],
        channel: ProgressChannel,
    ) -> int:
        for campaign, links in remaining:
            progress = CampaignProgress.for_campaign(campaign)
            progress.total_urls = len(links)
            CampaignStateMachine(progress).trigger(RefreshEvent.FAIL, error=RESOURCE_SKIP_MESSAGE)
            progress_by_campaign[campaign.id] = progress
            channel.emit_progress(progress)
            CAMPAIGNS_REFRESHED.labels(status=progress.status.value).inc()
        return len(remaining)

    @staticmethod
    def _summarize(
        progress_by_campaign: dict[str, CampaignProgress],
        tracker: ResourceBudgetTracker,
        skipped: int,
        cancelled: bool,
    ) -> BatchSummary:
        results = [CampaignResult.from_progress(p) for p in progress_by_campaign.values()]
        successful = sum(1 for r in results if r.status == RefreshStatus.COMPLETED)
        return BatchSummary(
            total=len(results),
            successful=successful,
            failed=len(results) - successful,
            skipped=skipped,
            resource_usage_bytes=tracker.consumed_bytes,
            resource_limit_reached=tracker.limit_reached,
            cancelled=cancelled,
            results=results,
        )

    def _open_log(self, trigger_type: str) -> int | None:
        if not self._record_logs:
            return None
        try:
            return self._store.create_refresh_log(trigger_type)
        except PersistenceError as exc:
            logger.warning("Could not open refresh log", error=str(exc))
            return None

    def _close_log(self, log_id: int | None, summary: BatchSummary) -> None:
        if log_id is None:
            return
        try:
            self._store.complete_refresh_log(log_id, summary)
        except PersistenceError as exc:
            logger.warning("Could not complete refresh log", log_id=log_id, error=str(exc))
