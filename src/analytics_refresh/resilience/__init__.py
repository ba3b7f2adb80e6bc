"""Resilience infrastructure: retry with backoff and cooperative cancellation."""

from analytics_refresh.resilience.cancellation import CancellationToken
from analytics_refresh.resilience.retry import (
    RESOURCE_LIMIT_KEYWORDS,
    RetryPolicy,
    is_resource_limit_error,
    with_retry,
)

__all__ = [
    "RESOURCE_LIMIT_KEYWORDS",
    "CancellationToken",
    "RetryPolicy",
    "is_resource_limit_error",
    "with_retry",
]
