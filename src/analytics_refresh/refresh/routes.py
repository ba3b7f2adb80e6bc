"""FastAPI routes for starting and cancelling refresh batches.

``POST /refresh`` starts a batch in the background and streams its progress
as server-sent events; the ``X-Batch-ID`` response header identifies the batch
for ``POST /refresh/{batch_id}/cancel``.  A client that disconnects from the
stream cancels its batch at the next checkpoint.

The orchestrator and the registry of running batches live in
``app.state.services`` (see ``initialize_services``) so the router can be
tested with fakes.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import AsyncIterator
from typing import Any

import structlog
from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from analytics_refresh.refresh.orchestrator import TRIGGER_MANUAL, BatchOrchestrator
from analytics_refresh.refresh.progress import ProgressChannel, encode_sse

logger = structlog.get_logger()

router = APIRouter()


class RefreshRequest(BaseModel):
    """Body of ``POST /refresh``."""

    model_config = ConfigDict(populate_by_name=True)

    campaign_ids: list[str] = Field(alias="campaignIds", min_length=1)


@router.post("/refresh")
async def start_refresh(body: RefreshRequest, request: Request) -> StreamingResponse:
    """Start a refresh batch and stream its events.

    Args:
        body: The validated request body.
        request: The incoming FastAPI request.

    Returns:
        A ``text/event-stream`` response carrying ``data: {json}`` frames.

    Raises:
        HTTPException: 503 if the orchestrator is not configured.
    """
    services: dict[str, Any] = request.app.state.services
    orchestrator: BatchOrchestrator | None = services.get("orchestrator")
    if orchestrator is None:
        logger.error("Refresh requested but orchestrator is not configured")
        raise HTTPException(status_code=503, detail="Refresh service not configured")

    batches: dict[str, ProgressChannel] = services.setdefault("batches", {})
    background_tasks: set[asyncio.Task[Any]] = services.setdefault("background_tasks", set())

    batch_id = uuid.uuid4().hex
    channel = ProgressChannel()
    batches[batch_id] = channel

    # The batch task inherits this context: its log lines carry batch_id.
    with structlog.contextvars.bound_contextvars(batch_id=batch_id):
        task = asyncio.create_task(
            orchestrator.run(body.campaign_ids, channel, trigger_type=TRIGGER_MANUAL)
        )
    background_tasks.add(task)
    task.add_done_callback(background_tasks.discard)
    logger.info("Refresh batch accepted", batch_id=batch_id, campaigns=len(body.campaign_ids))

    async def event_stream() -> AsyncIterator[str]:
        try:
            async for event in channel:
                yield encode_sse(event)
        finally:
            if not channel.closed:
                channel.cancel("Client disconnected")
            batches.pop(batch_id, None)

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"X-Batch-ID": batch_id, "Cache-Control": "no-cache"},
    )


@router.post("/refresh/{batch_id}/cancel", status_code=202)
async def cancel_refresh(batch_id: str, request: Request) -> dict[str, str]:
    """Request cancellation of a running batch.

    Raises:
        HTTPException: 404 if no running batch has this ID.
    """
    batches: dict[str, ProgressChannel] = request.app.state.services.get("batches", {})
    channel = batches.get(batch_id)
    if channel is None:
        raise HTTPException(status_code=404, detail="Unknown refresh batch")

    logger.info("Refresh cancel requested", batch_id=batch_id)
    channel.cancel("Cancelled by request")
    return {"status": "cancelling"}
