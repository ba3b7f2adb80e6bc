"""SQLite schema for campaign analytics persistence.

Only the columns the refresh service reads or writes are modelled; the
dashboard owns the rest of the campaign record.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path


def init_analytics_db(db_path: Path | str) -> sqlite3.Connection:
    """Create and initialize the analytics database with WAL mode and indexes.

    Args:
        db_path: Path to the SQLite database file, or ``":memory:"``.

    Returns:
        An open sqlite3.Connection with WAL mode enabled.
    """
    conn = sqlite3.connect(str(db_path), check_same_thread=False)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")

    conn.execute("""
        CREATE TABLE IF NOT EXISTS campaigns (
            id TEXT PRIMARY KEY,
            brand_name TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'draft',
            analytics_status TEXT,
            total_views INTEGER NOT NULL DEFAULT 0,
            total_engagement INTEGER NOT NULL DEFAULT 0,
            engagement_rate REAL NOT NULL DEFAULT 0,
            analytics_data TEXT NOT NULL DEFAULT '{}',
            analytics_updated_at TEXT,
            created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS campaign_creators (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            campaign_id TEXT NOT NULL REFERENCES campaigns (id) ON DELETE CASCADE,
            creator_id TEXT NOT NULL,
            content_urls TEXT NOT NULL DEFAULT '{}',
            UNIQUE (campaign_id, creator_id)
        )
    """)

    # The UNIQUE key is the idempotency key of upsert_url_analytics.
    conn.execute("""
        CREATE TABLE IF NOT EXISTS campaign_url_analytics (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            campaign_id TEXT NOT NULL REFERENCES campaigns (id) ON DELETE CASCADE,
            platform TEXT NOT NULL,
            content_url TEXT NOT NULL,
            date_recorded TEXT NOT NULL,
            views INTEGER NOT NULL DEFAULT 0,
            likes INTEGER NOT NULL DEFAULT 0,
            comments INTEGER NOT NULL DEFAULT 0,
            shares INTEGER NOT NULL DEFAULT 0,
            engagement INTEGER NOT NULL DEFAULT 0,
            engagement_rate REAL NOT NULL DEFAULT 0,
            analytics_metadata TEXT NOT NULL DEFAULT '{}',
            fetched_at TEXT NOT NULL,
            UNIQUE (campaign_id, platform, content_url, date_recorded)
        )
    """)

    # One rollup row per campaign and day, rebuilt by upsert_daily_performance.
    conn.execute("""
        CREATE TABLE IF NOT EXISTS daily_campaign_performance (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            campaign_id TEXT NOT NULL REFERENCES campaigns (id) ON DELETE CASCADE,
            date_recorded TEXT NOT NULL,
            total_views INTEGER NOT NULL DEFAULT 0,
            total_engagement INTEGER NOT NULL DEFAULT 0,
            engagement_rate REAL NOT NULL DEFAULT 0,
            platform_breakdown TEXT NOT NULL DEFAULT '{}',
            updated_at TEXT NOT NULL,
            UNIQUE (campaign_id, date_recorded)
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS campaign_refresh_logs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            trigger_type TEXT NOT NULL,
            started_at TEXT NOT NULL,
            completed_at TEXT,
            total_campaigns INTEGER,
            successful_campaigns INTEGER,
            failed_campaigns INTEGER,
            skipped_campaigns INTEGER,
            resource_usage_mb REAL,
            resource_limit_reached INTEGER,
            cancelled INTEGER,
            campaign_results TEXT NOT NULL DEFAULT '[]'
        )
    """)

    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_campaigns_status ON campaigns (status)"
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_url_analytics_campaign "
        "ON campaign_url_analytics (campaign_id, date_recorded)"
    )

    conn.commit()
    return conn


def close_analytics_db(conn: sqlite3.Connection) -> None:
    """Close the analytics database connection.

    Args:
        conn: The database connection to close.
    """
    conn.close()
