"""Bounded exponential-backoff retry for one scrape call, built on tenacity.

Backoff between attempts is ``base_delay * 2**attempt + uniform(0, jitter)``.
Errors whose message indicates quota/resource exhaustion are fatal: they are
raised immediately as :class:`ResourceLimitError` without consuming the
remaining attempts.  Every other error is transient and retried until the
attempt limit, after which the last error is re-raised.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from analytics_refresh.domain.errors import RefreshCancelledError, ResourceLimitError
from analytics_refresh.resilience.cancellation import CancellationToken

logger = structlog.get_logger()

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 1.0
JITTER_SECONDS = 0.5
MAX_BACKOFF_SECONDS = 60.0

# Lower-cased fragments of provider error messages that mean the account-wide
# quota is exhausted.  Plain rate limiting ("429", "rate limit") is transient.
RESOURCE_LIMIT_KEYWORDS: tuple[str, ...] = (
    "quota",
    "memory limit",
    "resource limit",
    "usage limit",
    "monthly limit",
    "insufficient credit",
    "exceed the memory",
)


def is_resource_limit_error(exc: BaseException) -> bool:
    """Return True if *exc* signals quota or resource exhaustion.

    Args:
        exc: The exception raised by the wrapped call.

    Returns:
        True for :class:`ResourceLimitError` or a message containing one of
        :data:`RESOURCE_LIMIT_KEYWORDS`.
    """
    if isinstance(exc, ResourceLimitError):
        return True
    message = str(exc).lower()
    return any(keyword in message for keyword in RESOURCE_LIMIT_KEYWORDS)


def _is_transient(exc: BaseException) -> bool:
    return not isinstance(exc, (ResourceLimitError, RefreshCancelledError))


def _before_sleep_log(label: str) -> Callable[[RetryCallState], None]:
    def _log(retry_state: RetryCallState) -> None:
        exception = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "Retrying scrape call",
            call=label,
            attempt=retry_state.attempt_number,
            wait=retry_state.next_action.sleep if retry_state.next_action else 0,
            exception=str(exception),
        )

    return _log


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY,
    jitter: float = JITTER_SECONDS,
    token: CancellationToken | None = None,
    sleep: SleepFn | None = None,
    label: str = "scrape",
) -> T:
    """Run *fn* with bounded exponential backoff.

    Args:
        fn: Zero-argument coroutine function performing one unit of work.
        max_attempts: Total attempts before giving up.
        base_delay: Backoff before the second attempt, doubled each retry.
        jitter: Upper bound of the uniform random jitter added to each wait.
        token: Cancellation token checked before every attempt; backoff sleeps
            wake early when it is cancelled.
        sleep: Optional sleep coroutine overriding the token/asyncio sleep.
        label: Name used in log entries.

    Returns:
        The result of the first successful attempt.

    Raises:
        ResourceLimitError: Immediately, when the error signals quota exhaustion.
        RefreshCancelledError: When cancellation is observed before an attempt.
        Exception: The last transient error once *max_attempts* are exhausted.
    """

    async def _sleep(seconds: float) -> None:
        if sleep is not None:
            await sleep(seconds)
        elif token is not None:
            await token.sleep(seconds)
        else:
            await asyncio.sleep(seconds)

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=base_delay, max=MAX_BACKOFF_SECONDS)
        + wait_random(0, jitter),
        retry=retry_if_exception(_is_transient),
        before_sleep=_before_sleep_log(label),
        sleep=_sleep,
        reraise=True,
    )

    try:
        async for attempt in retrying:
            with attempt:
                if token is not None:
                    token.raise_if_cancelled()
                try:
                    result = await fn()
                except (ResourceLimitError, RefreshCancelledError):
                    raise
                except Exception as exc:
                    if is_resource_limit_error(exc):
                        logger.warning("Resource limit reported, not retrying", call=label)
                        raise ResourceLimitError(str(exc)) from exc
                    raise
    except Exception as exc:
        if _is_transient(exc):
            logger.error(
                "Scrape call failed after all retries",
                call=label,
                attempts=max_attempts,
                exception=str(exc),
            )
        raise

    return result


@dataclass(frozen=True)
class RetryPolicy:
    """Retry settings applied to every scrape call of a batch."""

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    base_delay: float = DEFAULT_BASE_DELAY
    jitter: float = JITTER_SECONDS

    async def run(
        self,
        fn: Callable[[], Awaitable[T]],
        *,
        token: CancellationToken | None = None,
        sleep: SleepFn | None = None,
        label: str = "scrape",
    ) -> T:
        """Run *fn* under this policy.  See :func:`with_retry`."""
        return await with_retry(
            fn,
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            jitter=self.jitter,
            token=token,
            sleep=sleep,
            label=label,
        )
