"""Shared pytest fixtures for the analytics refresh test suite."""

from __future__ import annotations

import sqlite3
from collections.abc import Callable, Iterator
from typing import Any

import pytest

from analytics_refresh.domain.types import Platform
from analytics_refresh.scrapers.profiles import PlatformProfiles
from analytics_refresh.store.schema import init_analytics_db
from analytics_refresh.store.store import AnalyticsStore


class FakeScraper:
    """Scripted stand-in for the platform scraper functions.

    ``responses`` maps a canonical URL to a sequence of payloads or exceptions
    returned call by call; the last entry repeats once the sequence is used up.
    URLs without a script return ``default``.
    """

    def __init__(
        self,
        responses: dict[str, list[dict[str, Any] | Exception]] | None = None,
        default: dict[str, Any] | Exception | None = None,
        on_call: Callable[[Platform, str], None] | None = None,
    ) -> None:
        self.responses = {url: list(seq) for url, seq in (responses or {}).items()}
        self.default = default if default is not None else {"views": 0, "engagement": 0}
        self.on_call = on_call
        self.calls: list[tuple[Platform, str]] = []

    async def fetch(self, platform: Platform, url: str) -> dict[str, Any]:
        self.calls.append((platform, url))
        if self.on_call is not None:
            self.on_call(platform, url)
        script = self.responses.get(url)
        if script:
            outcome = script.pop(0) if len(script) > 1 else script[0]
        else:
            outcome = self.default
        if isinstance(outcome, Exception):
            raise outcome
        return dict(outcome)


@pytest.fixture
def store_conn() -> Iterator[sqlite3.Connection]:
    """An initialized in-memory analytics database."""
    conn = init_analytics_db(":memory:")
    yield conn
    conn.close()


@pytest.fixture
def store(store_conn: sqlite3.Connection) -> AnalyticsStore:
    """An AnalyticsStore over the in-memory database."""
    return AnalyticsStore(store_conn)


@pytest.fixture
def profiles() -> PlatformProfiles:
    """Default platform profiles with pacing disabled."""
    return PlatformProfiles().without_delays()


@pytest.fixture
def fake_scraper_cls() -> type[FakeScraper]:
    """The FakeScraper class, for tests that script their own responses."""
    return FakeScraper


@pytest.fixture
def seed_campaign(store: AnalyticsStore) -> Callable[..., None]:
    """Insert a campaign with one creator holding the given content URLs."""

    def _seed(
        campaign_id: str,
        name: str | None = None,
        content_urls: dict[str, list[str]] | None = None,
        status: str = "active",
    ) -> None:
        store.add_campaign(campaign_id, name or f"Brand {campaign_id}", status=status)
        if content_urls is not None:
            store.add_campaign_creator(campaign_id, f"creator-{campaign_id}", content_urls)

    return _seed
