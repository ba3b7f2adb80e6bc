"""SQLite-backed analytics store used by the refresh service.

Accepts a sqlite3.Connection, uses parameterized queries exclusively, and
commits synchronously after every write.  Every write is safe to repeat:
aggregate analytics overwrite the campaign row and per-URL analytics are
upserted on ``(campaign_id, platform, content_url, date_recorded)``.
"""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Iterable
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any, Iterator

import structlog

from analytics_refresh.domain.errors import BatchSetupError, PersistenceError
from analytics_refresh.domain.models import (
    BatchSummary,
    CampaignLoad,
    CampaignRef,
    compute_engagement_rate,
)
from analytics_refresh.domain.types import ACTIVE_CAMPAIGN_STATUSES, CampaignStoreStatus

logger = structlog.get_logger()


def _now() -> str:
    return datetime.now(tz=UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def _placeholders(count: int) -> str:
    return ", ".join("?" for _ in range(count))


class AnalyticsStore:
    """Read campaigns and persist refreshed analytics in SQLite.

    Args:
        conn: An open sqlite3.Connection whose database was initialized with
              :func:`init_analytics_db`.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    @contextmanager
    def _write(self, operation: str) -> Iterator[None]:
        try:
            yield
            self._conn.commit()
        except sqlite3.Error as exc:
            self._conn.rollback()
            logger.error("Analytics store write failed", operation=operation, error=str(exc))
            raise PersistenceError(f"{operation} failed: {exc}") from exc

    def ping(self) -> None:
        """Run a trivial query, raising if the connection is unusable."""
        self._conn.execute("SELECT 1")

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    def load_campaigns(self, campaign_ids: Iterable[str]) -> list[CampaignLoad]:
        """Load campaigns and their creators' content-URL maps.

        Unknown IDs are skipped with a warning.  Campaigns come back in the
        order their IDs were requested (duplicates collapsed).

        Args:
            campaign_ids: The campaign IDs to load.

        Returns:
            One :class:`CampaignLoad` per existing campaign.

        Raises:
            BatchSetupError: If the lookup itself fails.
        """
        ids = list(dict.fromkeys(campaign_ids))
        if not ids:
            return []

        try:
            campaign_rows = self._conn.execute(
                f"SELECT id, brand_name FROM campaigns WHERE id IN ({_placeholders(len(ids))})",
                ids,
            ).fetchall()
            creator_rows = self._conn.execute(
                f"""
                SELECT campaign_id, content_urls FROM campaign_creators
                WHERE campaign_id IN ({_placeholders(len(ids))})
                ORDER BY id
                """,
                ids,
            ).fetchall()
        except sqlite3.Error as exc:
            raise BatchSetupError(f"Failed to fetch campaigns: {exc}") from exc

        names = {row[0]: row[1] for row in campaign_rows}
        urls_by_campaign: dict[str, list[dict[str, Any]]] = {}
        for campaign_id, content_urls in creator_rows:
            urls_by_campaign.setdefault(campaign_id, []).append(
                self._decode_content_urls(campaign_id, content_urls)
            )

        missing = [campaign_id for campaign_id in ids if campaign_id not in names]
        if missing:
            logger.warning("Requested campaigns not found", campaign_ids=missing)

        return [
            CampaignLoad(
                campaign=CampaignRef(id=campaign_id, name=names[campaign_id]),
                content_urls=urls_by_campaign.get(campaign_id, []),
            )
            for campaign_id in ids
            if campaign_id in names
        ]

    @staticmethod
    def _decode_content_urls(campaign_id: str, raw: str | None) -> dict[str, Any]:
        if not raw:
            return {}
        try:
            value = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Malformed content_urls ignored", campaign_id=campaign_id)
            return {}
        return value if isinstance(value, dict) else {}

    def list_active_campaign_ids(self) -> list[str]:
        """Return IDs of active/live/published campaigns, oldest first."""
        statuses = list(ACTIVE_CAMPAIGN_STATUSES)
        try:
            rows = self._conn.execute(
                f"""
                SELECT id FROM campaigns
                WHERE status IN ({_placeholders(len(statuses))})
                ORDER BY created_at, id
                """,
                statuses,
            ).fetchall()
        except sqlite3.Error as exc:
            raise BatchSetupError(f"Failed to fetch campaigns: {exc}") from exc
        return [row[0] for row in rows]

    def get_campaign_analytics(self, campaign_id: str) -> dict[str, Any] | None:
        """Return the stored aggregate analytics for a campaign, if it exists."""
        prev_factory = self._conn.row_factory
        self._conn.row_factory = sqlite3.Row
        try:
            row = self._conn.execute(
                """
                SELECT id, analytics_status, total_views, total_engagement,
                       engagement_rate, analytics_data, analytics_updated_at
                FROM campaigns WHERE id = ?
                """,
                (campaign_id,),
            ).fetchone()
        finally:
            self._conn.row_factory = prev_factory
        if row is None:
            return None
        result = dict(row)
        result["analytics_data"] = json.loads(result["analytics_data"])
        return result

    def list_url_analytics(self, campaign_id: str) -> list[dict[str, Any]]:
        """Return every per-URL analytics row for a campaign."""
        prev_factory = self._conn.row_factory
        self._conn.row_factory = sqlite3.Row
        try:
            rows = self._conn.execute(
                """
                SELECT * FROM campaign_url_analytics
                WHERE campaign_id = ?
                ORDER BY date_recorded, id
                """,
                (campaign_id,),
            ).fetchall()
        finally:
            self._conn.row_factory = prev_factory
        results: list[dict[str, Any]] = []
        for row in rows:
            row_dict = dict(row)
            row_dict["analytics_metadata"] = json.loads(row_dict["analytics_metadata"])
            results.append(row_dict)
        return results

    def list_daily_performance(self, campaign_id: str) -> list[dict[str, Any]]:
        """Return a campaign's daily performance rows, oldest day first."""
        prev_factory = self._conn.row_factory
        self._conn.row_factory = sqlite3.Row
        try:
            rows = self._conn.execute(
                """
                SELECT campaign_id, date_recorded, total_views, total_engagement,
                       engagement_rate, platform_breakdown, updated_at
                FROM daily_campaign_performance
                WHERE campaign_id = ?
                ORDER BY date_recorded
                """,
                (campaign_id,),
            ).fetchall()
        finally:
            self._conn.row_factory = prev_factory
        results: list[dict[str, Any]] = []
        for row in rows:
            row_dict = dict(row)
            row_dict["platform_breakdown"] = json.loads(row_dict["platform_breakdown"])
            results.append(row_dict)
        return results

    # ------------------------------------------------------------------
    # Write operations
    # ------------------------------------------------------------------

    def add_campaign(
        self,
        campaign_id: str,
        brand_name: str,
        status: str = "active",
        created_at: str | None = None,
    ) -> None:
        """Insert or replace a campaign record."""
        with self._write("add_campaign"):
            self._conn.execute(
                """
                INSERT INTO campaigns (id, brand_name, status, created_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT (id) DO UPDATE SET
                    brand_name = excluded.brand_name,
                    status = excluded.status
                """,
                (campaign_id, brand_name, status, created_at or _now()),
            )

    def add_campaign_creator(
        self, campaign_id: str, creator_id: str, content_urls: dict[str, list[str]],
    ) -> None:
        """Attach a creator and their content URLs to a campaign."""
        with self._write("add_campaign_creator"):
            self._conn.execute(
                """
                INSERT INTO campaign_creators (campaign_id, creator_id, content_urls)
                VALUES (?, ?, ?)
                ON CONFLICT (campaign_id, creator_id) DO UPDATE SET
                    content_urls = excluded.content_urls
                """,
                (campaign_id, creator_id, json.dumps(content_urls)),
            )

    def set_campaign_status(self, campaign_id: str, status: CampaignStoreStatus) -> None:
        """Record the refresh status of a campaign.

        Raises:
            PersistenceError: If the write fails.
        """
        with self._write("set_campaign_status"):
            self._conn.execute(
                "UPDATE campaigns SET analytics_status = ? WHERE id = ?",
                (status.value, campaign_id),
            )

    def update_campaign_analytics(
        self,
        campaign_id: str,
        total_views: int,
        total_engagement: int,
        engagement_rate: float,
        platform_results: dict[str, list[dict[str, Any]]],
    ) -> None:
        """Overwrite a campaign's aggregate analytics.

        Args:
            campaign_id: The campaign to update.
            total_views: Summed views across all scraped URLs.
            total_engagement: Summed engagement across all scraped URLs.
            engagement_rate: ``total_engagement / total_views * 100``, 2 decimals.
            platform_results: Per-platform lists of ``{url, ...metrics}`` entries.

        Raises:
            PersistenceError: If the write fails.
        """
        with self._write("update_campaign_analytics"):
            self._conn.execute(
                """
                UPDATE campaigns SET
                    total_views = ?,
                    total_engagement = ?,
                    engagement_rate = ?,
                    analytics_data = ?,
                    analytics_updated_at = ?
                WHERE id = ?
                """,
                (
                    total_views,
                    total_engagement,
                    engagement_rate,
                    json.dumps(platform_results),
                    _now(),
                    campaign_id,
                ),
            )

    def upsert_url_analytics(
        self,
        campaign_id: str,
        content_url: str,
        platform: str,
        date_recorded: str,
        views: int,
        likes: int,
        comments: int,
        shares: int,
        engagement: int,
        engagement_rate: float,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Insert or update one URL's analytics for a given day.

        Idempotent on ``(campaign_id, platform, content_url, date_recorded)``:
        repeating the call replaces the metrics of the existing row.

        Raises:
            PersistenceError: If the write fails.
        """
        with self._write("upsert_url_analytics"):
            self._conn.execute(
                """
                INSERT INTO campaign_url_analytics (
                    campaign_id, platform, content_url, date_recorded, views, likes,
                    comments, shares, engagement, engagement_rate, analytics_metadata,
                    fetched_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (campaign_id, platform, content_url, date_recorded)
                DO UPDATE SET
                    views = excluded.views,
                    likes = excluded.likes,
                    comments = excluded.comments,
                    shares = excluded.shares,
                    engagement = excluded.engagement,
                    engagement_rate = excluded.engagement_rate,
                    analytics_metadata = excluded.analytics_metadata,
                    fetched_at = excluded.fetched_at
                """,
                (
                    campaign_id,
                    platform,
                    content_url,
                    date_recorded,
                    views,
                    likes,
                    comments,
                    shares,
                    engagement,
                    engagement_rate,
                    json.dumps(metadata or {}),
                    _now(),
                ),
            )

    def upsert_daily_performance(self, campaign_id: str, date_recorded: str) -> dict[str, Any]:
        """Recompute and store a campaign's performance rollup for one day.

        Totals and a ``{platform: {views, engagement, urls}}`` breakdown are
        summed from that day's per-URL rows.  A day without per-URL rows
        records the campaign's current aggregate totals with an empty
        breakdown.  Idempotent on ``(campaign_id, date_recorded)``: calling
        it again rebuilds the same row from the same inputs.

        Returns:
            The stored rollup as a dict.

        Raises:
            PersistenceError: If the campaign does not exist or the write fails.
        """
        with self._write("upsert_daily_performance"):
            rows = self._conn.execute(
                """
                SELECT platform, views, engagement FROM campaign_url_analytics
                WHERE campaign_id = ? AND date_recorded = ?
                ORDER BY id
                """,
                (campaign_id, date_recorded),
            ).fetchall()

            breakdown: dict[str, dict[str, int]] = {}
            if rows:
                for platform, views, engagement in rows:
                    entry = breakdown.setdefault(
                        platform, {"views": 0, "engagement": 0, "urls": 0}
                    )
                    entry["views"] += views
                    entry["engagement"] += engagement
                    entry["urls"] += 1
                total_views = sum(entry["views"] for entry in breakdown.values())
                total_engagement = sum(entry["engagement"] for entry in breakdown.values())
                engagement_rate = compute_engagement_rate(total_views, total_engagement)
            else:
                campaign = self._conn.execute(
                    "SELECT total_views, total_engagement, engagement_rate "
                    "FROM campaigns WHERE id = ?",
                    (campaign_id,),
                ).fetchone()
                if campaign is None:
                    raise PersistenceError(f"Unknown campaign {campaign_id}")
                total_views, total_engagement, engagement_rate = campaign

            updated_at = _now()
            self._conn.execute(
                """
                INSERT INTO daily_campaign_performance (
                    campaign_id, date_recorded, total_views, total_engagement,
                    engagement_rate, platform_breakdown, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (campaign_id, date_recorded)
                DO UPDATE SET
                    total_views = excluded.total_views,
                    total_engagement = excluded.total_engagement,
                    engagement_rate = excluded.engagement_rate,
                    platform_breakdown = excluded.platform_breakdown,
                    updated_at = excluded.updated_at
                """,
                (
                    campaign_id,
                    date_recorded,
                    total_views,
                    total_engagement,
                    engagement_rate,
                    json.dumps(breakdown),
                    updated_at,
                ),
            )

        logger.debug(
            "Daily performance recorded",
            campaign_id=campaign_id,
            date_recorded=date_recorded,
            total_views=total_views,
        )
        return {
            "campaign_id": campaign_id,
            "date_recorded": date_recorded,
            "total_views": total_views,
            "total_engagement": total_engagement,
            "engagement_rate": engagement_rate,
            "platform_breakdown": breakdown,
            "updated_at": updated_at,
        }

    # ------------------------------------------------------------------
    # Refresh logs
    # ------------------------------------------------------------------

    def create_refresh_log(self, trigger_type: str) -> int:
        """Open a refresh-log entry and return its ID.

        Raises:
            PersistenceError: If the write fails.
        """
        with self._write("create_refresh_log"):
            cursor = self._conn.execute(
                "INSERT INTO campaign_refresh_logs (trigger_type, started_at) VALUES (?, ?)",
                (trigger_type, _now()),
            )
        return cursor.lastrowid or 0

    def complete_refresh_log(self, log_id: int, summary: BatchSummary) -> None:
        """Close a refresh-log entry with the batch summary.

        Raises:
            PersistenceError: If the write fails.
        """
        results = [result.model_dump(mode="json", exclude_none=True) for result in summary.results]
        with self._write("complete_refresh_log"):
            self._conn.execute(
                """
                UPDATE campaign_refresh_logs SET
                    completed_at = ?,
                    total_campaigns = ?,
                    successful_campaigns = ?,
                    failed_campaigns = ?,
                    skipped_campaigns = ?,
                    resource_usage_mb = ?,
                    resource_limit_reached = ?,
                    cancelled = ?,
                    campaign_results = ?
                WHERE id = ?
                """,
                (
                    _now(),
                    summary.total,
                    summary.successful,
                    summary.failed,
                    summary.skipped,
                    summary.resource_usage_mb,
                    int(summary.resource_limit_reached),
                    int(summary.cancelled),
                    json.dumps(results),
                    log_id,
                ),
            )

    def list_refresh_logs(self, limit: int = 20) -> list[dict[str, Any]]:
        """Return the most recent refresh-log entries, newest first."""
        prev_factory = self._conn.row_factory
        self._conn.row_factory = sqlite3.Row
        try:
            rows = self._conn.execute(
                "SELECT * FROM campaign_refresh_logs ORDER BY id DESC LIMIT ?",
                (limit,),
            ).fetchall()
        finally:
            self._conn.row_factory = prev_factory
        results: list[dict[str, Any]] = []
        for row in rows:
            row_dict = dict(row)
            row_dict["campaign_results"] = json.loads(row_dict["campaign_results"])
            results.append(row_dict)
        return results
