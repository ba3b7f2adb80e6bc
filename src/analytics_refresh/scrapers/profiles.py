"""Per-platform scraping profiles: budget estimate, pacing, function name.

Loads profile overrides from a YAML file validated via Pydantic.  Estimates are
static heuristics of the third-party processing cost of scraping one URL, not
measured usage, and should be treated as approximate.
"""

from __future__ import annotations

from pathlib import Path

import structlog
import yaml  # type: ignore[import-untyped]
from pydantic import BaseModel, ConfigDict, Field

from analytics_refresh.domain.types import Platform

logger = structlog.get_logger()

MIB = 1024 * 1024

DEFAULT_PROFILES_PATH = Path("config/platforms.yaml")


class PlatformProfile(BaseModel):
    """Scraping profile for one platform."""

    model_config = ConfigDict(frozen=True)

    estimate_bytes: int = Field(gt=0)
    inter_call_delay: float = Field(ge=0)
    function_name: str


class PlatformProfiles(BaseModel):
    """Root configuration holding one profile per supported platform."""

    model_config = ConfigDict(frozen=True)

    youtube: PlatformProfile = Field(
        default_factory=lambda: PlatformProfile(
            estimate_bytes=256 * MIB,
            inter_call_delay=5.0,
            function_name="fetch-youtube-analytics",
        )
    )
    instagram: PlatformProfile = Field(
        default_factory=lambda: PlatformProfile(
            estimate_bytes=512 * MIB,
            inter_call_delay=8.0,
            function_name="fetch-instagram-analytics",
        )
    )
    tiktok: PlatformProfile = Field(
        default_factory=lambda: PlatformProfile(
            estimate_bytes=512 * MIB,
            inter_call_delay=8.0,
            function_name="fetch-tiktok-analytics",
        )
    )

    def for_platform(self, platform: Platform) -> PlatformProfile:
        """Return the profile for *platform*."""
        profile: PlatformProfile = getattr(self, platform.value)
        return profile

    def estimates(self) -> dict[Platform, int]:
        """Return the per-platform resource estimate map used for budgeting."""
        return {platform: self.for_platform(platform).estimate_bytes for platform in Platform}

    def without_delays(self) -> PlatformProfiles:
        """Return a copy with every inter-call delay set to zero."""
        return PlatformProfiles(
            **{
                platform.value: self.for_platform(platform).model_copy(
                    update={"inter_call_delay": 0.0}
                )
                for platform in Platform
            }
        )


def load_platform_profiles(path: Path | None = None) -> PlatformProfiles:
    """Load and validate platform profiles from a YAML file.

    Platforms missing from the file keep their built-in profile; a profile
    given in the file replaces the default field by field.

    Args:
        path: Path to the YAML file.  Defaults to ``config/platforms.yaml``.

    Returns:
        Validated profiles.  Falls back to the built-in defaults if the file is
        missing, empty, or contains invalid YAML.
    """
    path = path or DEFAULT_PROFILES_PATH
    if not path.exists():
        return PlatformProfiles()

    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError:
        logger.warning("Invalid YAML in platform profiles, using defaults", path=str(path))
        return PlatformProfiles()

    if not raw:
        return PlatformProfiles()
    if not isinstance(raw, dict):
        logger.warning("Platform profiles file is not a mapping, using defaults", path=str(path))
        return PlatformProfiles()

    defaults = PlatformProfiles()
    merged: dict[str, dict[str, object]] = {}
    for platform in Platform:
        base = defaults.for_platform(platform).model_dump()
        override = raw.get(platform.value) or {}
        merged[platform.value] = {**base, **override}

    return PlatformProfiles.model_validate(merged)
