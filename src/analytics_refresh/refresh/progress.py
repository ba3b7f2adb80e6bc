"""One-way progress channel from the batch orchestrator to an observer.

Contract: any number of ``progress`` events, then exactly one terminal
``complete`` or ``error`` event, then the channel closes.  Emitting never
blocks the orchestrator.  The observer may request cancellation at any time;
the request is advisory and honored at the orchestrator's next checkpoint.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from typing import Any, Literal

import structlog
from pydantic import BaseModel, ConfigDict

from analytics_refresh.domain.models import BatchSummary, CampaignProgress
from analytics_refresh.resilience.cancellation import CancellationToken

logger = structlog.get_logger()


class ProgressEvent(BaseModel):
    """A snapshot of one campaign's progress."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["progress"] = "progress"
    progress: CampaignProgress

    def to_wire(self) -> dict[str, Any]:
        """Serialize to ``{type: "progress", campaignId, campaignName, ...}``."""
        return {"type": self.kind, **self.progress.to_wire()}


class CompleteEvent(BaseModel):
    """Terminal event carrying the batch summary."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["complete"] = "complete"
    summary: BatchSummary

    def to_wire(self) -> dict[str, Any]:
        """Serialize to ``{type: "complete", summary: {...}}``."""
        return {"type": self.kind, "summary": self.summary.to_wire()}


class ErrorEvent(BaseModel):
    """Terminal event for a batch that failed before processing started."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["error"] = "error"
    message: str

    def to_wire(self) -> dict[str, Any]:
        """Serialize to ``{type: "error", message}``."""
        return {"type": self.kind, "message": self.message}


StreamEvent = ProgressEvent | CompleteEvent | ErrorEvent


def encode_sse(event: StreamEvent) -> str:
    """Encode *event* as one server-sent-events ``data:`` frame."""
    return f"data: {json.dumps(event.to_wire())}\n\n"


class ProgressChannel:
    """Unbounded, push-only event stream with a single terminal event.

    Usage::

        channel = ProgressChannel()
        task = asyncio.create_task(orchestrator.run(ids, channel))
        async for event in channel:
            ...
    """

    def __init__(self, token: CancellationToken | None = None) -> None:
        self.token = token or CancellationToken()
        self._queue: asyncio.Queue[StreamEvent | None] = asyncio.Queue()
        self._closed = False
        self.terminal_event: CompleteEvent | ErrorEvent | None = None

    @property
    def closed(self) -> bool:
        """Return True once the terminal event has been sent."""
        return self._closed

    @property
    def cancel_requested(self) -> bool:
        """Return True if the observer asked to cancel."""
        return self.token.cancelled

    def cancel(self, reason: str = "Cancelled by observer") -> None:
        """Request cancellation of the batch feeding this channel."""
        logger.info("Refresh cancellation requested", reason=reason)
        self.token.cancel(reason)

    def emit_progress(self, progress: CampaignProgress) -> None:
        """Push a snapshot of *progress*.  Ignored once the channel is closed."""
        if self._closed:
            logger.warning(
                "Progress emitted after channel close", campaign_id=progress.campaign_id
            )
            return
        self._queue.put_nowait(ProgressEvent(progress=progress.model_copy()))

    def complete(self, summary: BatchSummary) -> None:
        """Send the terminal ``complete`` event and close the channel."""
        self._finish(CompleteEvent(summary=summary))

    def fail(self, message: str) -> None:
        """Send the terminal ``error`` event and close the channel."""
        self._finish(ErrorEvent(message=message))

    def _finish(self, event: CompleteEvent | ErrorEvent) -> None:
        if self._closed:
            raise RuntimeError("Progress channel already received its terminal event")
        self.terminal_event = event
        self._queue.put_nowait(event)
        self._queue.put_nowait(None)
        self._closed = True

    async def __aiter__(self) -> AsyncIterator[StreamEvent]:
        while True:
            event = await self._queue.get()
            if event is None:
                return
            yield event
