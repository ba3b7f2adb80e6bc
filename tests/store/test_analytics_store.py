"""Tests for the SQLite analytics store.

Each test gets a fresh in-memory database from the ``store`` fixture.
"""

from __future__ import annotations

import sqlite3

import pytest

from analytics_refresh.domain.errors import BatchSetupError, PersistenceError
from analytics_refresh.domain.models import BatchSummary, CampaignResult
from analytics_refresh.domain.types import CampaignStoreStatus, RefreshStatus
from analytics_refresh.store.schema import init_analytics_db
from analytics_refresh.store.store import AnalyticsStore

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------


class TestSchema:
    """init_analytics_db creates the expected tables."""

    def test_tables_exist(self, store_conn: sqlite3.Connection) -> None:
        names = {
            row[0]
            for row in store_conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
        }
        assert {
            "campaigns",
            "campaign_creators",
            "campaign_url_analytics",
            "campaign_refresh_logs",
            "daily_campaign_performance",
        } <= names

    def test_init_is_repeatable(self, tmp_path) -> None:
        path = tmp_path / "analytics.db"
        init_analytics_db(path).close()
        conn = init_analytics_db(path)
        conn.close()


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


class TestLoadCampaigns:
    """load_campaigns returns campaigns with their creators' URL maps."""

    def test_loads_in_request_order(self, store: AnalyticsStore, seed_campaign) -> None:
        seed_campaign("c1", "Alpha", {"youtube": ["https://youtu.be/a"]})
        seed_campaign("c2", "Beta", {"tiktok": ["https://www.tiktok.com/@b/video/1"]})

        loads = store.load_campaigns(["c2", "c1", "c2"])

        assert [load.campaign.id for load in loads] == ["c2", "c1"]
        assert loads[0].campaign.name == "Beta"
        assert loads[1].content_urls == [{"youtube": ["https://youtu.be/a"]}]

    def test_multiple_creators(self, store: AnalyticsStore, seed_campaign) -> None:
        seed_campaign("c1")
        store.add_campaign_creator("c1", "creator-a", {"youtube": ["https://youtu.be/a"]})
        store.add_campaign_creator("c1", "creator-b", {"instagram": ["https://instagram.com/p/b"]})

        (load,) = store.load_campaigns(["c1"])

        assert load.content_urls == [
            {"youtube": ["https://youtu.be/a"]},
            {"instagram": ["https://instagram.com/p/b"]},
        ]

    def test_campaign_without_creators(self, store: AnalyticsStore, seed_campaign) -> None:
        seed_campaign("c1")
        (load,) = store.load_campaigns(["c1"])
        assert load.content_urls == []

    def test_unknown_ids_are_skipped(self, store: AnalyticsStore, seed_campaign) -> None:
        seed_campaign("c1")
        loads = store.load_campaigns(["missing", "c1"])
        assert [load.campaign.id for load in loads] == ["c1"]

    def test_malformed_content_urls_treated_as_empty(
        self, store: AnalyticsStore, store_conn: sqlite3.Connection, seed_campaign,
    ) -> None:
        seed_campaign("c1")
        store_conn.execute(
            "INSERT INTO campaign_creators (campaign_id, creator_id, content_urls) "
            "VALUES ('c1', 'x', 'not json')"
        )
        store_conn.commit()
        (load,) = store.load_campaigns(["c1"])
        assert load.content_urls == [{}]

    def test_empty_request(self, store: AnalyticsStore) -> None:
        assert store.load_campaigns([]) == []

    def test_database_failure_raises_batch_setup_error(self) -> None:
        conn = init_analytics_db(":memory:")
        store = AnalyticsStore(conn)
        conn.close()
        with pytest.raises(BatchSetupError):
            store.load_campaigns(["c1"])


class TestListActiveCampaignIds:
    """Scheduled refresh picks active, live and published campaigns."""

    def test_filters_by_status(self, store: AnalyticsStore) -> None:
        store.add_campaign("c1", "A", status="active", created_at="2024-01-01T00:00:00Z")
        store.add_campaign("c2", "B", status="draft", created_at="2024-01-02T00:00:00Z")
        store.add_campaign("c3", "C", status="published", created_at="2024-01-03T00:00:00Z")
        store.add_campaign("c4", "D", status="live", created_at="2023-12-31T00:00:00Z")

        assert store.list_active_campaign_ids() == ["c4", "c1", "c3"]


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


class TestCampaignWrites:
    """Status and aggregate analytics updates."""

    def test_set_campaign_status(
        self, store: AnalyticsStore, store_conn: sqlite3.Connection, seed_campaign,
    ) -> None:
        seed_campaign("c1", status="active")
        store.set_campaign_status("c1", CampaignStoreStatus.ANALYZING)

        row = store_conn.execute(
            "SELECT status, analytics_status FROM campaigns WHERE id = 'c1'"
        ).fetchone()
        assert row == ("active", "analyzing")

    def test_update_campaign_analytics_overwrites(
        self, store: AnalyticsStore, seed_campaign,
    ) -> None:
        seed_campaign("c1")
        store.update_campaign_analytics("c1", 10, 1, 10.0, {"youtube": [{"url": "u"}]})
        store.update_campaign_analytics("c1", 1000, 50, 5.0, {"youtube": [{"url": "v"}]})

        analytics = store.get_campaign_analytics("c1")
        assert analytics is not None
        assert analytics["total_views"] == 1000
        assert analytics["total_engagement"] == 50
        assert analytics["engagement_rate"] == 5.0
        assert analytics["analytics_data"] == {"youtube": [{"url": "v"}]}
        assert analytics["analytics_updated_at"] is not None

    def test_get_campaign_analytics_unknown(self, store: AnalyticsStore) -> None:
        assert store.get_campaign_analytics("missing") is None

    def test_write_failure_raises_persistence_error(self) -> None:
        conn = init_analytics_db(":memory:")
        store = AnalyticsStore(conn)
        conn.execute("DROP TABLE campaigns")
        with pytest.raises(PersistenceError):
            store.set_campaign_status("c1", CampaignStoreStatus.ERROR)
        conn.close()


class TestUpsertUrlAnalytics:
    """Per-URL rows are idempotent on (campaign, platform, url, date)."""

    def _upsert(self, store: AnalyticsStore, views: int, date_recorded: str = "2024-05-01"):
        store.upsert_url_analytics(
            campaign_id="c1",
            content_url="https://www.youtube.com/watch?v=a",
            platform="youtube",
            date_recorded=date_recorded,
            views=views,
            likes=3,
            comments=2,
            shares=1,
            engagement=6,
            engagement_rate=0.6,
            metadata={"title": "Launch"},
        )

    def test_repeat_does_not_duplicate(self, store: AnalyticsStore, seed_campaign) -> None:
        seed_campaign("c1")
        self._upsert(store, 100)
        self._upsert(store, 250)

        rows = store.list_url_analytics("c1")
        assert len(rows) == 1
        assert rows[0]["views"] == 250
        assert rows[0]["analytics_metadata"] == {"title": "Launch"}

    def test_new_day_adds_row(self, store: AnalyticsStore, seed_campaign) -> None:
        seed_campaign("c1")
        self._upsert(store, 100, "2024-05-01")
        self._upsert(store, 120, "2024-05-02")

        rows = store.list_url_analytics("c1")
        assert [row["views"] for row in rows] == [100, 120]


class TestDailyPerformance:
    """Daily rollups are rebuilt from the day's per-URL rows."""

    DAY = "2024-05-01"

    def _url_row(
        self, store: AnalyticsStore, url: str, platform: str, views: int, engagement: int,
        date_recorded: str = DAY,
    ) -> None:
        store.upsert_url_analytics(
            campaign_id="c1",
            content_url=url,
            platform=platform,
            date_recorded=date_recorded,
            views=views,
            likes=engagement,
            comments=0,
            shares=0,
            engagement=engagement,
            engagement_rate=0.0,
        )

    def test_sums_url_rows_by_platform(self, store: AnalyticsStore, seed_campaign) -> None:
        seed_campaign("c1")
        self._url_row(store, "https://www.youtube.com/watch?v=a", "youtube", 1000, 50)
        self._url_row(store, "https://www.youtube.com/watch?v=b", "youtube", 500, 25)
        self._url_row(store, "https://www.tiktok.com/@a/video/1", "tiktok", 2500, 125)
        self._url_row(store, "https://www.youtube.com/watch?v=c", "youtube", 9, 9, "2024-04-30")

        daily = store.upsert_daily_performance("c1", self.DAY)

        assert daily["total_views"] == 4000
        assert daily["total_engagement"] == 200
        assert daily["engagement_rate"] == 5.0
        assert daily["platform_breakdown"] == {
            "youtube": {"views": 1500, "engagement": 75, "urls": 2},
            "tiktok": {"views": 2500, "engagement": 125, "urls": 1},
        }
        (row,) = store.list_daily_performance("c1")
        assert row["date_recorded"] == self.DAY
        assert row["total_views"] == 4000
        assert row["platform_breakdown"] == daily["platform_breakdown"]

    def test_repeat_rebuilds_single_row(self, store: AnalyticsStore, seed_campaign) -> None:
        seed_campaign("c1")
        url = "https://www.youtube.com/watch?v=a"
        self._url_row(store, url, "youtube", 100, 10)
        store.upsert_daily_performance("c1", self.DAY)
        store.upsert_daily_performance("c1", self.DAY)
        self._url_row(store, url, "youtube", 300, 30)
        store.upsert_daily_performance("c1", self.DAY)

        rows = store.list_daily_performance("c1")
        assert len(rows) == 1
        assert rows[0]["total_views"] == 300
        assert rows[0]["engagement_rate"] == 10.0
        assert rows[0]["platform_breakdown"] == {
            "youtube": {"views": 300, "engagement": 30, "urls": 1}
        }

    def test_day_without_url_rows_uses_campaign_totals(
        self, store: AnalyticsStore, seed_campaign,
    ) -> None:
        seed_campaign("c1")
        store.update_campaign_analytics("c1", 800, 40, 5.0, {})

        daily = store.upsert_daily_performance("c1", self.DAY)

        assert daily["total_views"] == 800
        assert daily["total_engagement"] == 40
        assert daily["engagement_rate"] == 5.0
        assert daily["platform_breakdown"] == {}
        assert store.list_daily_performance("c1")[0]["platform_breakdown"] == {}

    def test_one_row_per_day(self, store: AnalyticsStore, seed_campaign) -> None:
        seed_campaign("c1")
        store.upsert_daily_performance("c1", "2024-05-02")
        store.upsert_daily_performance("c1", "2024-05-01")

        rows = store.list_daily_performance("c1")
        assert [row["date_recorded"] for row in rows] == ["2024-05-01", "2024-05-02"]

    def test_unknown_campaign_raises(self, store: AnalyticsStore) -> None:
        with pytest.raises(PersistenceError, match="missing"):
            store.upsert_daily_performance("missing", self.DAY)
        assert store.list_daily_performance("missing") == []


# ---------------------------------------------------------------------------
# Refresh logs
# ---------------------------------------------------------------------------


class TestRefreshLogs:
    """Refresh-run history."""

    def test_create_and_complete(self, store: AnalyticsStore) -> None:
        log_id = store.create_refresh_log("scheduled")
        summary = BatchSummary(
            total=1,
            successful=1,
            failed=0,
            skipped=0,
            resource_usage_bytes=256 * 1024 * 1024,
            resource_limit_reached=False,
            results=[CampaignResult(id="c1", name="A", status=RefreshStatus.COMPLETED)],
        )
        store.complete_refresh_log(log_id, summary)

        (row,) = store.list_refresh_logs()
        assert row["trigger_type"] == "scheduled"
        assert row["completed_at"] is not None
        assert row["successful_campaigns"] == 1
        assert row["resource_usage_mb"] == 256.0
        assert row["cancelled"] == 0
        assert row["campaign_results"] == [{"id": "c1", "name": "A", "status": "completed"}]

    def test_newest_first_with_limit(self, store: AnalyticsStore) -> None:
        ids = [store.create_refresh_log("manual") for _ in range(3)]
        rows = store.list_refresh_logs(limit=2)
        assert [row["id"] for row in rows] == [ids[2], ids[1]]
        assert rows[0]["campaign_results"] == []
