"""Platform scraper client and per-platform scraping profiles."""

from analytics_refresh.scrapers.client import ScraperClient
from analytics_refresh.scrapers.profiles import (
    DEFAULT_PROFILES_PATH,
    PlatformProfile,
    PlatformProfiles,
    load_platform_profiles,
)

__all__ = [
    "DEFAULT_PROFILES_PATH",
    "PlatformProfile",
    "PlatformProfiles",
    "ScraperClient",
    "load_platform_profiles",
]
