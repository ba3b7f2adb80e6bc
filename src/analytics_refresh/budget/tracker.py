"""Batch-wide resource budget tracking for third-party scraping cost.

The scraping provider enforces an account-wide processing quota.  This tracker
keeps a process-local running estimate of what one batch has consumed and
decides whether the next unit of work may start.  It is reset per batch and
never shared across concurrent batches, so it only approximates the global
quota.

Admission is check-then-reserve: a unit is refused if its estimate would push
consumption past ``limit_bytes * safety_fraction``; the estimate is charged
only after the attempt completes, whether it succeeded or failed.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass

import structlog

from analytics_refresh.domain.models import BYTES_PER_MB, ContentLink
from analytics_refresh.domain.types import Platform

logger = structlog.get_logger()


@dataclass
class ResourceLedger:
    """Running resource total for one batch.

    Attributes:
        consumed_bytes: Estimated bytes consumed so far.  Never decreases.
        limit_bytes: The hard quota.
        safety_fraction: Fraction of the quota that may actually be used.
    """

    limit_bytes: int
    safety_fraction: float
    consumed_bytes: int = 0

    @property
    def ceiling_bytes(self) -> float:
        """The admission ceiling, ``limit_bytes * safety_fraction``."""
        return self.limit_bytes * self.safety_fraction


class ResourceBudgetTracker:
    """Admits or refuses scraping work against a fixed resource quota.

    Rules:
    - A unit with estimate ``e`` is admitted only if
      ``consumed + e <= limit * safety_fraction``.
    - Once any refusal happens, ``limit_reached`` stays True for the batch.
    - Consumption is charged after each attempt, success or failure.
    """

    def __init__(
        self,
        limit_bytes: int,
        safety_fraction: float,
        estimates: Mapping[Platform, int],
    ) -> None:
        """Initialize the tracker.

        Args:
            limit_bytes: The hard quota in bytes.
            safety_fraction: Fraction of the quota usable, in ``(0, 1]``.
            estimates: Per-platform estimated cost of scraping one URL.

        Raises:
            ValueError: If the limit, fraction or any estimate is out of range.
        """
        if limit_bytes <= 0:
            raise ValueError("limit_bytes must be positive")
        if not 0 < safety_fraction <= 1:
            raise ValueError("safety_fraction must be in (0, 1]")
        if any(value <= 0 for value in estimates.values()):
            raise ValueError("platform estimates must be positive")

        self.ledger = ResourceLedger(limit_bytes=limit_bytes, safety_fraction=safety_fraction)
        self._estimates = dict(estimates)
        self._limit_reached = False

    @property
    def consumed_bytes(self) -> int:
        """Estimated bytes consumed so far in this batch."""
        return self.ledger.consumed_bytes

    @property
    def usage_mb(self) -> float:
        """Consumed estimate in megabytes, rounded to 2 decimals."""
        return round(self.ledger.consumed_bytes / BYTES_PER_MB, 2)

    @property
    def limit_reached(self) -> bool:
        """Return True once any unit of work has been refused."""
        return self._limit_reached

    def estimate_for(self, platform: Platform) -> int:
        """Return the estimated cost of scraping one URL on *platform*.

        Raises:
            KeyError: If no estimate is configured for the platform.
        """
        return self._estimates[platform]

    def estimate_links(self, links: Iterable[ContentLink]) -> int:
        """Return the total estimated cost of scraping every link."""
        return sum(self.estimate_for(link.platform) for link in links)

    def can_admit(self, estimate: int) -> bool:
        """Check whether a unit with the given estimate fits in the budget.

        A refusal latches ``limit_reached``.

        Args:
            estimate: Estimated cost in bytes of the unit of work.

        Returns:
            True if the unit may proceed.
        """
        if self._limit_reached:
            return False
        if self.ledger.consumed_bytes + estimate > self.ledger.ceiling_bytes:
            self._limit_reached = True
            logger.warning(
                "Resource budget refused work",
                consumed_mb=self.usage_mb,
                estimate_mb=round(estimate / BYTES_PER_MB, 2),
                limit_mb=round(self.ledger.limit_bytes / BYTES_PER_MB, 2),
            )
            return False
        return True

    def admit(self, platform: Platform) -> bool:
        """Check whether one more URL on *platform* may be scraped."""
        return self.can_admit(self.estimate_for(platform))

    def charge(self, estimate: int) -> None:
        """Add a completed unit's estimate to the ledger.

        Raises:
            ValueError: If *estimate* is negative.
        """
        if estimate < 0:
            raise ValueError("estimate must not be negative")
        self.ledger.consumed_bytes += estimate

    def record(self, platform: Platform) -> None:
        """Charge the ledger for one completed scrape attempt on *platform*."""
        self.charge(self.estimate_for(platform))

    def mark_limit_reached(self) -> None:
        """Latch ``limit_reached`` after the provider reported quota exhaustion."""
        self._limit_reached = True
