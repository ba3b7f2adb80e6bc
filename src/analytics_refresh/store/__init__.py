"""SQLite analytics store: campaigns, per-URL analytics, refresh logs."""

from analytics_refresh.store.schema import close_analytics_db, init_analytics_db
from analytics_refresh.store.store import AnalyticsStore

__all__ = [
    "AnalyticsStore",
    "close_analytics_db",
    "init_analytics_db",
]
