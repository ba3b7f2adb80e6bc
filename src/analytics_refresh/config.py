"""Centralized, typed configuration using pydantic-settings.

Provides a single ``Settings`` class backed by ``.env`` file and environment
variables, a cached ``get_settings()`` accessor, and a ``validate_credentials()``
startup gate that enforces credential presence in production mode.

IMPORTANT: This module has ZERO imports from the ``analytics_refresh`` package
to prevent circular imports.  Only stdlib, pydantic, pydantic_settings, and
structlog are used.
"""

from __future__ import annotations

import sys
from functools import lru_cache
from pathlib import Path

import structlog
from pydantic import Field, SecretStr, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = structlog.get_logger()

GIB = 1024 * 1024 * 1024


class Settings(BaseSettings):
    """Application settings loaded from environment variables and ``.env`` file.

    ``SecretStr`` fields prevent accidental leaks in logs or error output.
    Delay and budget values default to the pacing observed against the
    third-party scraping provider.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # -- General ---------------------------------------------------------------
    production: bool = False
    http_port: int = 8000
    sentry_dsn: str = ""

    # -- Analytics store -------------------------------------------------------
    store_db_path: Path = Path("data/analytics.db")

    # -- Scraper functions -----------------------------------------------------
    functions_base_url: str = ""
    functions_api_key: SecretStr = SecretStr("")
    scraper_timeout: float = Field(default=120.0, gt=0)
    platform_profiles_path: Path | None = None

    # -- Resource budget -------------------------------------------------------
    resource_limit_bytes: int = Field(default=8 * GIB, gt=0)
    resource_safety_fraction: float = Field(default=0.9, gt=0, le=1)

    # -- Retry and pacing ------------------------------------------------------
    retry_max_attempts: int = Field(default=3, ge=1)
    retry_base_delay: float = Field(default=1.0, ge=0)
    inter_campaign_delay: float = Field(default=10.0, ge=0)


@lru_cache
def get_settings() -> Settings:
    """Return a cached ``Settings`` instance.

    The ``@lru_cache`` decorator ensures environment variables are parsed
    exactly once.  Call ``get_settings.cache_clear()`` in tests to reset.

    Returns:
        The application ``Settings``.
    """
    try:
        return Settings()
    except ValidationError as exc:
        # Log only the structured errors list -- never the full exception
        # which may contain raw SecretStr values.
        logger.error("settings_validation_failed", errors=exc.errors())
        sys.exit(1)


def validate_credentials(settings: Settings) -> None:
    """Enforce credential presence at startup.

    In **production** mode (``settings.production is True``), the application
    exits with a clear error block if any required setting is missing.

    In **development** mode, each missing setting is logged as a warning
    but the application continues to start.

    Args:
        settings: The loaded application settings.
    """
    errors: list[str] = []

    if not settings.functions_base_url:
        errors.append("FUNCTIONS_BASE_URL is empty or not set")

    if not settings.functions_api_key.get_secret_value():
        errors.append("FUNCTIONS_API_KEY is empty or not set")

    profiles_path = settings.platform_profiles_path
    if profiles_path is not None and not profiles_path.exists():
        errors.append(f"Platform profiles file not found: {profiles_path}")

    if not errors:
        logger.info("credential_validation_passed")
        return

    if settings.production:
        for err in errors:
            logger.error("credential_missing", detail=err)
        print("\n=== STARTUP FAILED ===", file=sys.stderr)
        print("Missing required settings for production mode:", file=sys.stderr)
        for err in errors:
            print(f"  - {err}", file=sys.stderr)
        print("======================\n", file=sys.stderr)
        sys.exit(1)
    else:
        for err in errors:
            logger.warning("credential_missing_dev", detail=err)
