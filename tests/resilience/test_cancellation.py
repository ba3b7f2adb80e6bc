"""Tests for the cooperative cancellation token."""

from __future__ import annotations

import asyncio

import pytest

from analytics_refresh.domain.errors import RefreshCancelledError
from analytics_refresh.resilience.cancellation import CancellationToken


class TestCancellationToken:
    """CancellationToken flag, reason and cancellable sleep."""

    def test_starts_uncancelled(self) -> None:
        token = CancellationToken()
        assert not token.cancelled
        token.raise_if_cancelled()

    def test_cancel_keeps_first_reason(self) -> None:
        token = CancellationToken()
        token.cancel("first")
        token.cancel("second")
        assert token.cancelled
        assert token.reason == "first"

    def test_raise_if_cancelled(self) -> None:
        token = CancellationToken()
        token.cancel("stop")
        with pytest.raises(RefreshCancelledError, match="stop"):
            token.raise_if_cancelled()

    def test_sleep_runs_to_completion(self) -> None:
        async def _run() -> bool:
            return await CancellationToken().sleep(0.01)

        assert asyncio.run(_run()) is False

    def test_sleep_wakes_on_cancel(self) -> None:
        async def _run() -> tuple[bool, float]:
            token = CancellationToken()
            loop = asyncio.get_running_loop()
            loop.call_later(0.01, token.cancel)
            start = loop.time()
            interrupted = await token.sleep(30)
            return interrupted, loop.time() - start

        interrupted, elapsed = asyncio.run(_run())
        assert interrupted is True
        assert elapsed < 5

    def test_sleep_returns_immediately_when_already_cancelled(self) -> None:
        async def _run() -> bool:
            token = CancellationToken()
            token.cancel()
            return await token.sleep(30)

        assert asyncio.run(_run()) is True
