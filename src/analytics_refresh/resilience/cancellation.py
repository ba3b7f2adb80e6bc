"""Cooperative cancellation token threaded through a refresh batch.

Cancellation is advisory: nothing is interrupted mid-call.  Each layer checks
the token at its suspension points (before a unit of work, during pacing and
backoff sleeps) and stops at the next one.
"""

from __future__ import annotations

import asyncio

from analytics_refresh.domain.errors import RefreshCancelledError


class CancellationToken:
    """A one-way flag that, once set, stays set for the rest of the batch."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        """Return True once cancellation has been requested."""
        return self._event.is_set()

    def cancel(self, reason: str = "Cancelled by observer") -> None:
        """Request cancellation.  Repeated calls keep the first reason."""
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    def raise_if_cancelled(self) -> None:
        """Raise :class:`RefreshCancelledError` if cancellation was requested."""
        if self._event.is_set():
            raise RefreshCancelledError(self.reason or "Refresh cancelled")

    async def sleep(self, seconds: float) -> bool:
        """Sleep for *seconds*, waking early if cancellation is requested.

        Args:
            seconds: Maximum time to sleep.

        Returns:
            True if the sleep was cut short by cancellation.
        """
        if self._event.is_set():
            return True
        if seconds <= 0:
            await asyncio.sleep(0)
            return self._event.is_set()
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except TimeoutError:
            return False
        return True
