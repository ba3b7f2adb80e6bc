"""Domain enumerations and platform mappings for the analytics refresh service."""

from enum import StrEnum


class Platform(StrEnum):
    """Supported social media platforms."""

    YOUTUBE = "youtube"
    INSTAGRAM = "instagram"
    TIKTOK = "tiktok"


class RefreshStatus(StrEnum):
    """Per-campaign progress status within one refresh batch."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


class CampaignStoreStatus(StrEnum):
    """Campaign status values written back to the analytics store."""

    ANALYZING = "analyzing"
    COMPLETED = "completed"
    ERROR = "error"


# Order in which a creator's content-URL map is walked.
PLATFORM_ORDER: tuple[Platform, ...] = (
    Platform.YOUTUBE,
    Platform.INSTAGRAM,
    Platform.TIKTOK,
)

# Campaign statuses picked up by the scheduled refresh.
ACTIVE_CAMPAIGN_STATUSES: tuple[str, ...] = ("active", "live", "published")


def parse_platform(value: str) -> Platform | None:
    """Resolve a platform tag to a :class:`Platform`.

    Args:
        value: A platform tag such as ``"YouTube"`` or ``"tiktok"``.

    Returns:
        The matching platform, or ``None`` if the tag is not supported.
    """
    try:
        return Platform(value.strip().lower())
    except ValueError:
        return None
