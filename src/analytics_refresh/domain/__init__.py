"""Domain types, models, and errors for the analytics refresh service."""

from analytics_refresh.domain.errors import (
    BatchSetupError,
    InvalidTransitionError,
    PersistenceError,
    RefreshCancelledError,
    RefreshError,
    ResourceLimitError,
    ScrapeError,
)
from analytics_refresh.domain.models import (
    BatchSummary,
    CampaignLoad,
    CampaignProgress,
    CampaignRef,
    CampaignResult,
    ContentLink,
    PlatformResult,
    compute_engagement_rate,
)
from analytics_refresh.domain.types import (
    ACTIVE_CAMPAIGN_STATUSES,
    PLATFORM_ORDER,
    CampaignStoreStatus,
    Platform,
    RefreshStatus,
    parse_platform,
)

__all__ = [
    "ACTIVE_CAMPAIGN_STATUSES",
    "PLATFORM_ORDER",
    "BatchSetupError",
    "BatchSummary",
    "CampaignLoad",
    "CampaignProgress",
    "CampaignRef",
    "CampaignResult",
    "CampaignStoreStatus",
    "ContentLink",
    "InvalidTransitionError",
    "PersistenceError",
    "Platform",
    "PlatformResult",
    "RefreshCancelledError",
    "RefreshError",
    "RefreshStatus",
    "ResourceLimitError",
    "ScrapeError",
    "compute_engagement_rate",
    "parse_platform",
]
