"""Tests for the batch resource budget tracker."""

from __future__ import annotations

import pytest

from analytics_refresh.budget.tracker import ResourceBudgetTracker, ResourceLedger
from analytics_refresh.domain.models import BYTES_PER_MB, ContentLink
from analytics_refresh.domain.types import Platform

ESTIMATES = {
    Platform.YOUTUBE: 256 * BYTES_PER_MB,
    Platform.INSTAGRAM: 512 * BYTES_PER_MB,
    Platform.TIKTOK: 512 * BYTES_PER_MB,
}


def _tracker(limit_mb: int = 1024, fraction: float = 1.0) -> ResourceBudgetTracker:
    return ResourceBudgetTracker(limit_mb * BYTES_PER_MB, fraction, ESTIMATES)


class TestValidation:
    """Constructor rejects out-of-range configuration."""

    @pytest.mark.parametrize(
        ("limit", "fraction", "estimates"),
        [
            (0, 0.9, ESTIMATES),
            (BYTES_PER_MB, 0.0, ESTIMATES),
            (BYTES_PER_MB, 1.5, ESTIMATES),
            (BYTES_PER_MB, 0.9, {Platform.YOUTUBE: 0}),
        ],
    )
    def test_invalid_configuration(self, limit, fraction, estimates) -> None:
        with pytest.raises(ValueError):
            ResourceBudgetTracker(limit, fraction, estimates)


class TestAdmission:
    """Check-then-reserve admission."""

    def test_ledger_ceiling(self) -> None:
        ledger = ResourceLedger(limit_bytes=1000, safety_fraction=0.9)
        assert ledger.ceiling_bytes == 900

    def test_admits_up_to_the_ceiling(self) -> None:
        tracker = _tracker(limit_mb=1024)
        assert tracker.admit(Platform.INSTAGRAM)
        tracker.record(Platform.INSTAGRAM)
        assert tracker.admit(Platform.TIKTOK)
        tracker.record(Platform.TIKTOK)
        assert tracker.consumed_bytes == 1024 * BYTES_PER_MB
        assert not tracker.limit_reached

    def test_refuses_past_the_safety_fraction(self) -> None:
        tracker = _tracker(limit_mb=1024, fraction=0.9)
        tracker.record(Platform.INSTAGRAM)
        assert not tracker.admit(Platform.INSTAGRAM)
        assert tracker.limit_reached

    def test_refusal_latches(self) -> None:
        tracker = _tracker(limit_mb=1024, fraction=0.9)
        tracker.record(Platform.INSTAGRAM)
        assert not tracker.admit(Platform.INSTAGRAM)
        # A cheaper unit that would fit is still refused once the limit is hit.
        assert not tracker.admit(Platform.YOUTUBE)

    def test_admission_does_not_charge(self) -> None:
        tracker = _tracker()
        assert tracker.admit(Platform.YOUTUBE)
        assert tracker.consumed_bytes == 0

    def test_near_limit_refuses_large_campaign(self) -> None:
        tracker = _tracker(limit_mb=2048, fraction=0.9)
        tracker.charge(1536 * BYTES_PER_MB)
        links = [
            ContentLink(url=f"u{i}", platform=Platform.TIKTOK, canonical_url=f"u{i}")
            for i in range(2)
        ]
        assert not tracker.can_admit(tracker.estimate_links(links))
        assert tracker.limit_reached

    def test_mark_limit_reached(self) -> None:
        tracker = _tracker()
        tracker.mark_limit_reached()
        assert tracker.limit_reached
        assert not tracker.admit(Platform.YOUTUBE)


class TestAccounting:
    """Ledger arithmetic and reporting."""

    def test_estimate_links(self) -> None:
        tracker = _tracker()
        links = [
            ContentLink(url="a", platform=Platform.YOUTUBE, canonical_url="a"),
            ContentLink(url="b", platform=Platform.INSTAGRAM, canonical_url="b"),
        ]
        assert tracker.estimate_links(links) == 768 * BYTES_PER_MB
        assert tracker.estimate_links([]) == 0

    def test_usage_mb(self) -> None:
        tracker = _tracker()
        tracker.record(Platform.YOUTUBE)
        assert tracker.usage_mb == 256.0

    def test_negative_charge_rejected(self) -> None:
        with pytest.raises(ValueError):
            _tracker().charge(-1)

    def test_consumption_is_monotonic(self) -> None:
        tracker = _tracker(limit_mb=10_000)
        seen = []
        for platform in [Platform.YOUTUBE, Platform.TIKTOK, Platform.INSTAGRAM]:
            tracker.record(platform)
            seen.append(tracker.consumed_bytes)
        assert seen == sorted(seen)
