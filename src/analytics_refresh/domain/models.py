"""Pydantic v2 models for the analytics refresh domain.

Wire serialization (camelCase keys, optional fields dropped) is expressed via
``serialization_alias`` so ``model_dump(by_alias=True, exclude_none=True)``
yields exactly the progress-stream payloads.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from analytics_refresh.domain.types import Platform, RefreshStatus

BYTES_PER_MB = 1024 * 1024


class CampaignRef(BaseModel):
    """Identity of a campaign being refreshed. Read-only for a batch."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str

    @field_validator("id")
    @classmethod
    def id_must_not_be_empty(cls, v: str) -> str:
        """Ensure the campaign ID is not empty or whitespace-only."""
        if not v.strip():
            raise ValueError("campaign id must not be empty")
        return v


class ContentLink(BaseModel):
    """One piece of tracked content attached to a campaign."""

    model_config = ConfigDict(frozen=True)

    url: str
    platform: Platform
    canonical_url: str

    @property
    def dedup_key(self) -> tuple[Platform, str]:
        """Return the ``(platform, canonical_url)`` deduplication key."""
        return (self.platform, self.canonical_url)


class CampaignLoad(BaseModel):
    """A campaign together with its creators' content-URL maps.

    ``content_urls`` holds one mapping per campaign creator, keyed by platform
    tag. Values are kept loose because they come straight from the store.
    """

    model_config = ConfigDict(frozen=True)

    campaign: CampaignRef
    content_urls: list[dict[str, Any]] = Field(default_factory=list)


class CampaignProgress(BaseModel):
    """Live progress record for one campaign, mutated in place by the batch."""

    campaign_id: str = Field(serialization_alias="campaignId")
    name: str = Field(serialization_alias="campaignName")
    status: RefreshStatus = RefreshStatus.PENDING
    processed_urls: int = Field(default=0, serialization_alias="processedUrls")
    total_urls: int = Field(default=0, serialization_alias="totalUrls")
    error: str | None = None

    @classmethod
    def for_campaign(cls, campaign: CampaignRef) -> CampaignProgress:
        """Create a pending progress record for *campaign*."""
        return cls(campaign_id=campaign.id, name=campaign.name)

    @property
    def is_terminal(self) -> bool:
        """Return True once the campaign is completed or errored."""
        return self.status in (RefreshStatus.COMPLETED, RefreshStatus.ERROR)

    def to_wire(self) -> dict[str, Any]:
        """Serialize to the progress-event payload."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class PlatformResult(BaseModel):
    """Outcome of one scrape attempt: metrics on success, ``error`` on failure."""

    model_config = ConfigDict(frozen=True)

    url: str
    platform: Platform
    views: int = 0
    engagement: int = 0
    likes: int = 0
    comments: int = 0
    shares: int = 0
    rate: float | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    raw: dict[str, Any] = Field(default_factory=dict)
    error: str | None = None

    @classmethod
    def from_payload(
        cls, url: str, platform: Platform, payload: dict[str, Any],
    ) -> PlatformResult:
        """Build a successful result from a scraper response payload.

        Missing or null metric fields count as zero.

        Args:
            url: The canonical content URL that was scraped.
            platform: The platform the URL belongs to.
            payload: The scraper response body.

        Returns:
            A successful ``PlatformResult``.
        """

        def _count(key: str) -> int:
            value = payload.get(key)
            return int(value) if value else 0

        rate = payload.get("rate")
        metadata = payload.get("analytics_metadata")
        return cls(
            url=url,
            platform=platform,
            views=_count("views"),
            engagement=_count("engagement"),
            likes=_count("likes"),
            comments=_count("comments"),
            shares=_count("shares"),
            rate=float(rate) if rate is not None else None,
            metadata=metadata if isinstance(metadata, dict) else {},
            raw=dict(payload),
        )

    @classmethod
    def failure(cls, url: str, platform: Platform, error: str) -> PlatformResult:
        """Build a per-URL error entry."""
        return cls(url=url, platform=platform, error=error)

    @property
    def succeeded(self) -> bool:
        """Return True if the scrape produced metrics."""
        return self.error is None

    @property
    def engagement_rate(self) -> float:
        """Per-URL engagement rate, preferring the provider-reported value."""
        if self.rate is not None:
            return self.rate
        return compute_engagement_rate(self.views, self.engagement)

    def to_analytics_entry(self) -> dict[str, Any]:
        """Return the ``{url, ...payload}`` entry stored in aggregate analytics."""
        if not self.succeeded:
            return {"url": self.url, "error": self.error}
        return {**self.raw, "url": self.url}


class CampaignResult(BaseModel):
    """Final per-campaign line of a batch summary."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    status: RefreshStatus
    error: str | None = None

    @classmethod
    def from_progress(cls, progress: CampaignProgress) -> CampaignResult:
        """Snapshot a terminal progress record."""
        return cls(
            id=progress.campaign_id,
            name=progress.name,
            status=progress.status,
            error=progress.error,
        )


class BatchSummary(BaseModel):
    """Terminal summary of one refresh batch, produced exactly once."""

    model_config = ConfigDict(frozen=True)

    total: int
    successful: int
    failed: int
    skipped: int
    resource_usage_bytes: int = Field(exclude=True)
    resource_limit_reached: bool = Field(serialization_alias="resourceLimitReached")
    cancelled: bool = False
    results: list[CampaignResult] = Field(default_factory=list)

    @computed_field(alias="resourceUsageMB")  # type: ignore[prop-decorator]
    @property
    def resource_usage_mb(self) -> float:
        """Consumed resource estimate in megabytes, rounded to 2 decimals."""
        return round(self.resource_usage_bytes / BYTES_PER_MB, 2)

    def to_wire(self) -> dict[str, Any]:
        """Serialize to the ``summary`` object of the completion event."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def compute_engagement_rate(views: int, engagement: int) -> float:
    """Return ``engagement / views * 100`` rounded to 2 decimals, 0 without views."""
    if views <= 0:
        return 0.0
    return round(engagement / views * 100, 2)
