"""Application entry point for the analytics refresh HTTP service.

Configures:
- **structlog** with JSON rendering (production) or colored console (development),
  forwarding ERROR events to Sentry when a DSN is set
- **Analytics store** (SQLite, WAL) shared by every batch
- **Scraper client** for the per-platform scraper functions
- **Batch orchestrator** behind ``POST /refresh``
- **Prometheus** metrics at ``/metrics`` and health probes at ``/health`` / ``/ready``
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any, TextIO

import structlog
import uvicorn
from fastapi import FastAPI

from analytics_refresh.config import Settings, get_settings, validate_credentials
from analytics_refresh.health import register_health_routes
from analytics_refresh.observability.metrics import setup_metrics
from analytics_refresh.observability.middleware import SERVICE_NAME, RequestIdMiddleware
from analytics_refresh.observability.sentry import get_sentry_processor, init_sentry
from analytics_refresh.refresh.orchestrator import BatchOrchestrator
from analytics_refresh.refresh.routes import router as refresh_router
from analytics_refresh.scrapers.client import ScraperClient
from analytics_refresh.scrapers.profiles import load_platform_profiles
from analytics_refresh.store.schema import close_analytics_db, init_analytics_db
from analytics_refresh.store.store import AnalyticsStore

logger = structlog.get_logger()


def configure_logging(
    production: bool = False,
    sentry_enabled: bool = False,
    stream: TextIO | None = None,
) -> None:
    """Configure structlog for production (JSON) or development (console).

    Production mode (*production=True*): JSON rendering at INFO level.
    Development mode: colored console rendering at DEBUG level.

    Args:
        production: Enable production mode if ``True``.
        sentry_enabled: Insert the structlog-sentry processor before rendering.
        stream: Where log lines are written.  Defaults to stdout.
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
    ]
    if sentry_enabled:
        shared_processors.append(get_sentry_processor())
    shared_processors += [
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if production:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
        log_level = logging.INFO
    else:
        renderer = structlog.dev.ConsoleRenderer()
        log_level = logging.DEBUG

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.bind_contextvars(service=SERVICE_NAME)


def initialize_services(settings: Settings | None = None) -> dict[str, Any]:
    """Set up all shared services for the application.

    Opens the analytics database, loads platform profiles, and builds the
    scraper client and batch orchestrator.

    Args:
        settings: Application settings.  If ``None``, ``get_settings()`` is used.

    Returns:
        A dict of initialized service instances keyed by name.
    """
    if settings is None:
        settings = get_settings()

    services: dict[str, Any] = {"_settings": settings}

    # a. Analytics store
    db_path = settings.store_db_path
    db_path.parent.mkdir(parents=True, exist_ok=True)
    store_conn = init_analytics_db(db_path)
    store = AnalyticsStore(store_conn)
    services["store_conn"] = store_conn
    services["store"] = store

    # b. Platform profiles and scraper client
    profiles = load_platform_profiles(settings.platform_profiles_path)
    services["profiles"] = profiles

    scraper = None
    api_key = settings.functions_api_key.get_secret_value()
    if settings.functions_base_url and api_key:
        scraper = ScraperClient(
            base_url=settings.functions_base_url,
            api_key=api_key,
            profiles=profiles,
            timeout=settings.scraper_timeout,
        )
        logger.info("ScraperClient initialized", base_url=settings.functions_base_url)
    else:
        logger.info("Scraper functions not configured, refresh disabled")
    services["scraper"] = scraper

    # c. Batch orchestrator
    orchestrator = None
    if scraper is not None:
        orchestrator = BatchOrchestrator.from_settings(settings, store, scraper, profiles)
    services["orchestrator"] = orchestrator

    # d. Running batches, keyed by batch ID, and their tasks
    services["batches"] = {}
    services["background_tasks"] = set()

    return services


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Lifespan context manager for FastAPI startup and shutdown.

    On shutdown: cancels running batches and closes the analytics database.

    Args:
        app: The FastAPI application instance.

    Yields:
        Control to the application.
    """
    services = app.state.services
    logger.info("FastAPI application starting")
    yield
    for channel in services.get("batches", {}).values():
        channel.cancel("Service shutting down")
    store_conn = services.get("store_conn")
    if store_conn is not None:
        close_analytics_db(store_conn)
        logger.info("Analytics database connection closed")


def create_app(services: dict[str, Any]) -> FastAPI:
    """Create the FastAPI app with lifespan, refresh router, health and metrics.

    Args:
        services: The initialized services dict from ``initialize_services``.

    Returns:
        The configured FastAPI application.
    """
    fastapi_app = FastAPI(title="Campaign Analytics Refresh", lifespan=lifespan)
    fastapi_app.state.services = services
    fastapi_app.state.settings = services.get("_settings") or get_settings()
    fastapi_app.add_middleware(RequestIdMiddleware)
    fastapi_app.include_router(refresh_router)
    register_health_routes(fastapi_app)
    setup_metrics(fastapi_app)
    return fastapi_app


async def main() -> None:
    """Main entry point: configure, initialize services, and serve HTTP."""
    settings = get_settings()
    sentry_enabled = init_sentry(
        settings.sentry_dsn,
        environment="production" if settings.production else "development",
    )
    configure_logging(production=settings.production, sentry_enabled=sentry_enabled)
    logger.info("Application starting")

    validate_credentials(settings)

    services = initialize_services(settings)
    fastapi_app = create_app(services)

    config = uvicorn.Config(
        fastapi_app,
        host="0.0.0.0",
        port=settings.http_port,
        log_level="info",
    )
    server = uvicorn.Server(config)
    await server.serve()


if __name__ == "__main__":
    asyncio.run(main())
