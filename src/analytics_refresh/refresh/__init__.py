"""Refresh batch orchestration: processor, orchestrator, progress channel."""

from analytics_refresh.refresh.orchestrator import (
    RESOURCE_SKIP_MESSAGE,
    TRIGGER_MANUAL,
    TRIGGER_SCHEDULED,
    BatchOrchestrator,
)
from analytics_refresh.refresh.processor import CampaignOutcome, CampaignProcessor, Scraper
from analytics_refresh.refresh.progress import (
    CompleteEvent,
    ErrorEvent,
    ProgressChannel,
    ProgressEvent,
    StreamEvent,
    encode_sse,
)

__all__ = [
    "RESOURCE_SKIP_MESSAGE",
    "TRIGGER_MANUAL",
    "TRIGGER_SCHEDULED",
    "BatchOrchestrator",
    "CampaignOutcome",
    "CampaignProcessor",
    "CompleteEvent",
    "ErrorEvent",
    "ProgressChannel",
    "ProgressEvent",
    "Scraper",
    "StreamEvent",
    "encode_sse",
]
