"""Server-sent event stream of generated text."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from starlette.types import Send

from ..core.config import settings
from ..core.sse import KEEPALIVE_COMMENT, SSE_HEADERS, format_sse
from ..fanout.hub import EventFanoutHub, Listener, ListenerClosed
from .deps import get_hub

logger = logging.getLogger(__name__)

router = APIRouter()


async def event_stream(
    request: Request,
    hub: EventFanoutHub,
    listener: Listener,
    *,
    keepalive: float,
) -> AsyncIterator[str]:
    """Yield SSE frames for ``listener`` until the client goes away or the hub drops it."""

    try:
        while not await request.is_disconnected():
            try:
                event = await asyncio.wait_for(listener.get(), timeout=keepalive)
            except asyncio.TimeoutError:
                yield KEEPALIVE_COMMENT
                continue
            except ListenerClosed as exc:
                logger.info("Closing event stream for listener %s (%s)", listener.id, exc.reason)
                break
            yield format_sse(event.model_dump_json())
    finally:
        hub.deregister(listener, reason="disconnect")


class EventStreamResponse(StreamingResponse):
    """Streams one listener and drops it from the hub when a write to the client fails."""

    def __init__(self, hub: EventFanoutHub, listener: Listener, content: AsyncIterator[str], **kwargs: Any) -> None:
        super().__init__(content, **kwargs)
        self.hub = hub
        self.listener = listener

    async def stream_response(self, send: Send) -> None:
        try:
            await super().stream_response(send)
        except OSError as exc:
            logger.warning("Write to listener %s failed: %s", self.listener.id, exc)
            self.hub.deregister(self.listener, reason="write_failure")
            await self.body_iterator.aclose()
            raise


@router.get("/events", summary="Stream generated text events over SSE")
async def events(request: Request, hub: EventFanoutHub = Depends(get_hub)) -> StreamingResponse:
    listener = hub.register()
    return EventStreamResponse(
        hub,
        listener,
        event_stream(request, hub, listener, keepalive=settings.SSE_KEEPALIVE_SECONDS),
        headers=SSE_HEADERS,
        media_type="text/event-stream",
    )
