"""Prometheus metrics instrumentation for the analytics refresh service.

Provides:
- ``setup_metrics(app)``: Attach prometheus-fastapi-instrumentator to a FastAPI app,
  exposing ``/metrics`` with HTTP request duration/count plus the refresh metrics.
- ``URLS_SCRAPED``: Counter of scrape attempts by platform and outcome.
- ``CAMPAIGNS_REFRESHED``: Counter of campaigns reaching a terminal status.
- ``ACTIVE_BATCHES``: Gauge of refresh batches currently running.
- ``RESOURCE_USAGE``: Gauge of the estimated resource consumption of the last batch.

Business metrics are updated by the processor and orchestrator as work completes.
"""

from __future__ import annotations

from fastapi import FastAPI
from prometheus_client import Counter, Gauge
from prometheus_fastapi_instrumentator import Instrumentator

URLS_SCRAPED: Counter = Counter(
    "refresh_urls_scraped_total",
    "Total content URLs scraped, by platform and outcome",
    ["platform", "outcome"],
)

CAMPAIGNS_REFRESHED: Counter = Counter(
    "refresh_campaigns_total",
    "Total campaigns reaching a terminal refresh status",
    ["status"],
)

ACTIVE_BATCHES: Gauge = Gauge(
    "refresh_active_batches",
    "Number of refresh batches currently running",
)

RESOURCE_USAGE: Gauge = Gauge(
    "refresh_resource_usage_bytes",
    "Estimated third-party resource consumption of the most recent batch",
)


def setup_metrics(app: FastAPI) -> None:
    """Instrument *app* with Prometheus HTTP metrics and expose ``/metrics``.

    Excludes health/ready/metrics endpoints from instrumentation to avoid
    noise in dashboards.

    Args:
        app: The FastAPI application to instrument.
    """
    Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=True,
        excluded_handlers=["/health", "/ready", "/metrics"],
    ).instrument(app).expose(app, include_in_schema=False, should_gzip=True)
