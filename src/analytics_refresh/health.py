"""Health and readiness endpoints for container orchestration.

- ``GET /health`` -- Liveness probe.  Returns 200 if the process is alive.
- ``GET /ready``  -- Readiness probe.  Returns 200 only when the analytics
  store answers a query **and** the scraper client is configured.  Returns 503
  with per-check details otherwise.
"""

from __future__ import annotations

import asyncio
import sqlite3
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


def register_health_routes(app: FastAPI) -> None:
    """Register ``/health`` and ``/ready`` endpoints on *app*.

    Args:
        app: The FastAPI application instance.
    """

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Liveness probe -- always returns 200 if the process is running."""
        return {"status": "healthy"}

    @app.get("/ready")
    async def ready(request: Request) -> JSONResponse:
        """Readiness probe -- checks the analytics store and scraper client."""
        services: dict[str, Any] = request.app.state.services
        checks: dict[str, str] = {}

        store = services.get("store")
        if store is not None:
            try:
                await asyncio.to_thread(store.ping)
                checks["store"] = "ok"
            except sqlite3.Error:
                checks["store"] = "fail"
        else:
            checks["store"] = "fail"

        checks["scraper"] = "ok" if services.get("scraper") is not None else "fail"

        all_ok = all(v == "ok" for v in checks.values())
        status = "ready" if all_ok else "not_ready"
        code = 200 if all_ok else 503

        return JSONResponse(content={"status": status, "checks": checks}, status_code=code)
