"""Campaign processor: refresh every content link of one campaign.

Walks the campaign's deduplicated links in discovery order, asking the
resource tracker for admission before each scrape and calling the scraper
through the retry policy.  A failed URL is recorded and the walk continues;
a resource-limit refusal or cancellation stops it early.  Whatever totals were
collected are persisted idempotently before the campaign reaches its terminal
state.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import Any, Protocol

import structlog

from analytics_refresh.budget.tracker import ResourceBudgetTracker
from analytics_refresh.domain.errors import (
    PersistenceError,
    RefreshCancelledError,
    ResourceLimitError,
)
from analytics_refresh.domain.models import (
    CampaignProgress,
    ContentLink,
    PlatformResult,
    compute_engagement_rate,
)
from analytics_refresh.domain.types import CampaignStoreStatus, Platform, RefreshStatus
from analytics_refresh.observability.metrics import CAMPAIGNS_REFRESHED, URLS_SCRAPED
from analytics_refresh.resilience.cancellation import CancellationToken
from analytics_refresh.resilience.retry import RetryPolicy, SleepFn
from analytics_refresh.scrapers.profiles import PlatformProfiles
from analytics_refresh.state_machine import CampaignStateMachine, RefreshEvent
from analytics_refresh.store.store import AnalyticsStore

logger = structlog.get_logger()


class Scraper(Protocol):
    """Fetches fresh metrics for one content URL."""

    async def fetch(self, platform: Platform, url: str) -> dict[str, Any]: ...


ProgressSink = Callable[[CampaignProgress], None]


def utc_today() -> date:
    return datetime.now(tz=UTC).date()


@dataclass
class CampaignOutcome:
    """What happened to one campaign during a batch."""

    progress: CampaignProgress
    results: list[PlatformResult] = field(default_factory=list)
    total_views: int = 0
    total_engagement: int = 0
    engagement_rate: float = 0.0
    resource_limit_hit: bool = False
    cancelled: bool = False

    @property
    def failed_urls(self) -> int:
        return sum(1 for result in self.results if not result.succeeded)


class CampaignProcessor:
    """Processes one campaign end-to-end within a batch.

    A processor is built per batch: the tracker and cancellation token it holds
    belong to that batch alone.

    Args:
        scraper: The platform scraper collaborator.
        store: Analytics store receiving aggregates and per-URL rows.
        tracker: The batch's resource budget tracker.
        profiles: Platform profiles providing the inter-call delays.
        retry_policy: Retry policy wrapping each scrape call.
        emit: Receives a progress snapshot after every change.
        token: The batch's cancellation token.
        retry_sleep: Optional sleep used for retry backoff (tests record delays).
        today: Returns the ``date_recorded`` for per-URL upserts.
    """

    def __init__(
        self,
        scraper: Scraper,
        store: AnalyticsStore,
        tracker: ResourceBudgetTracker,
        profiles: PlatformProfiles,
        retry_policy: RetryPolicy | None = None,
        *,
        emit: ProgressSink | None = None,
        token: CancellationToken | None = None,
        retry_sleep: SleepFn | None = None,
        today: Callable[[], date] = utc_today,
    ) -> None:
        self._scraper = scraper
        self._store = store
        self._tracker = tracker
        self._profiles = profiles
        self._retry_policy = retry_policy or RetryPolicy()
        self._emit_fn = emit
        self._token = token or CancellationToken()
        self._retry_sleep = retry_sleep
        self._today = today

    def _emit(self, progress: CampaignProgress) -> None:
        if self._emit_fn is not None:
            self._emit_fn(progress)

    async def process(
        self, progress: CampaignProgress, links: list[ContentLink],
    ) -> CampaignOutcome:
        """Refresh one campaign and drive its progress to a terminal state.

        Never raises for scrape, quota, persistence or cancellation failures;
        they are reflected in the returned outcome and the progress record.

        Args:
            progress: The campaign's pending progress record, mutated in place.
            links: The campaign's normalized, deduplicated content links.

        Returns:
            The campaign outcome, including whether the provider quota was hit.
        """
        machine = CampaignStateMachine(progress)
        outcome = CampaignOutcome(progress=progress)
        log = logger.bind(campaign_id=progress.campaign_id)

        progress.total_urls = len(links)
        progress.processed_urls = 0
        machine.trigger(RefreshEvent.START)
        self._emit(progress)
        log.info("Campaign refresh started", total_urls=len(links))

        try:
            self._store.set_campaign_status(progress.campaign_id, CampaignStoreStatus.ANALYZING)
        except PersistenceError as exc:
            return self._finish(machine, outcome, f"Failed to update campaign status: {exc}")

        if not links:
            try:
                self._store.update_campaign_analytics(progress.campaign_id, 0, 0, 0.0, {})
            except PersistenceError as exc:
                return self._finish(machine, outcome, f"Failed to save analytics: {exc}")
            return self._finish(machine, outcome, None)

        await self._scrape_links(progress, links, outcome)

        outcome.engagement_rate = compute_engagement_rate(
            outcome.total_views, outcome.total_engagement,
        )
        try:
            self._persist(progress.campaign_id, outcome)
        except PersistenceError as exc:
            return self._finish(machine, outcome, f"Failed to save analytics: {exc}")

        return self._finish(machine, outcome, self._error_message(progress, outcome))

    async def _scrape_links(
        self,
        progress: CampaignProgress,
        links: list[ContentLink],
        outcome: CampaignOutcome,
    ) -> None:
        for index, link in enumerate(links):
            if self._token.cancelled:
                outcome.cancelled = True
                return
            if not self._tracker.admit(link.platform):
                outcome.resource_limit_hit = True
                return

            result = await self._scrape(link, outcome)
            # Admitted work is charged whether it succeeded or not.
            self._tracker.record(link.platform)
            outcome.results.append(result)
            if result.succeeded:
                outcome.total_views += result.views
                outcome.total_engagement += result.engagement

            progress.processed_urls = index + 1
            self._emit(progress)

            if outcome.resource_limit_hit or outcome.cancelled:
                return
            if index < len(links) - 1:
                delay = self._profiles.for_platform(link.platform).inter_call_delay
                await self._token.sleep(delay)

    async def _scrape(self, link: ContentLink, outcome: CampaignOutcome) -> PlatformResult:
        platform = link.platform
        url = link.canonical_url

        async def _call() -> dict[str, Any]:
            return await self._scraper.fetch(platform, url)

        try:
            payload = await self._retry_policy.run(
                _call, token=self._token, sleep=self._retry_sleep, label=f"{platform}:{url}",
            )
        except ResourceLimitError as exc:
            self._tracker.mark_limit_reached()
            outcome.resource_limit_hit = True
            URLS_SCRAPED.labels(platform=platform.value, outcome="resource_limit").inc()
            return PlatformResult.failure(url, platform, str(exc))
        except RefreshCancelledError as exc:
            outcome.cancelled = True
            URLS_SCRAPED.labels(platform=platform.value, outcome="cancelled").inc()
            return PlatformResult.failure(url, platform, str(exc))
        except Exception as exc:
            logger.warning("Content URL refresh failed", platform=platform, url=url, error=str(exc))
            URLS_SCRAPED.labels(platform=platform.value, outcome="error").inc()
            return PlatformResult.failure(url, platform, str(exc))

        URLS_SCRAPED.labels(platform=platform.value, outcome="success").inc()
        return PlatformResult.from_payload(url, platform, payload)

    def _persist(self, campaign_id: str, outcome: CampaignOutcome) -> None:
        by_platform: dict[str, list[dict[str, Any]]] = {}
        for result in outcome.results:
            by_platform.setdefault(result.platform.value, []).append(result.to_analytics_entry())

        self._store.update_campaign_analytics(
            campaign_id,
            outcome.total_views,
            outcome.total_engagement,
            outcome.engagement_rate,
            by_platform,
        )

        date_recorded = self._today().isoformat()
        for result in outcome.results:
            if not result.succeeded:
                continue
            self._store.upsert_url_analytics(
                campaign_id=campaign_id,
                content_url=result.url,
                platform=result.platform.value,
                date_recorded=date_recorded,
                views=result.views,
                likes=result.likes,
                comments=result.comments,
                shares=result.shares,
                engagement=result.engagement,
                engagement_rate=result.engagement_rate,
                metadata=result.metadata,
            )

        self._store.upsert_daily_performance(campaign_id, date_recorded)

    @staticmethod
    def _error_message(progress: CampaignProgress, outcome: CampaignOutcome) -> str | None:
        remaining = progress.total_urls - progress.processed_urls
        if outcome.resource_limit_hit:
            return (
                f"Stopped after {progress.processed_urls}/{progress.total_urls} URL(s); "
                f"skipped {remaining} remaining URL(s) due to resource limits"
            )
        if outcome.cancelled:
            return (
                f"Refresh cancelled after {progress.processed_urls}/{progress.total_urls} URL(s)"
            )
        if outcome.failed_urls:
            return f"{outcome.failed_urls} of {progress.total_urls} URL(s) failed to refresh"
        return None

    def _finish(
        self,
        machine: CampaignStateMachine,
        outcome: CampaignOutcome,
        error: str | None,
    ) -> CampaignOutcome:
        progress = outcome.progress
        store_status = CampaignStoreStatus.ERROR if error else CampaignStoreStatus.COMPLETED
        try:
            self._store.set_campaign_status(progress.campaign_id, store_status)
        except PersistenceError as exc:
            logger.error(
                "Failed to record final campaign status",
                campaign_id=progress.campaign_id,
                error=str(exc),
            )
            error = error or f"Failed to update campaign status: {exc}"

        if error:
            machine.trigger(RefreshEvent.FAIL, error=error)
        else:
            machine.trigger(RefreshEvent.COMPLETE)
        self._emit(progress)

        CAMPAIGNS_REFRESHED.labels(status=progress.status.value).inc()
        log = logger.bind(campaign_id=progress.campaign_id)
        if progress.status == RefreshStatus.COMPLETED:
            log.info(
                "Campaign refresh completed",
                total_views=outcome.total_views,
                total_engagement=outcome.total_engagement,
                engagement_rate=outcome.engagement_rate,
            )
        else:
            log.warning("Campaign refresh finished with errors", error=error)
        return outcome
