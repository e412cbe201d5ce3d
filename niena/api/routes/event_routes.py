"""
Event Routes - server-sent events

GET /events/stream?token=... - text/event-stream of the user's events.
A PING frame is sent after 25 seconds without events to keep proxies
from closing the connection.
"""

import asyncio
import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from niena.core.auth import get_stream_user
from niena.services.events import EventType, get_event_bus, make_event

router = APIRouter(prefix="/events", tags=["Events"])
logger = logging.getLogger(__name__)

PING_INTERVAL_SECONDS = 25


def format_sse(event: dict) -> str:
    return f"data: {json.dumps(event, default=str)}\n\n"


async def event_stream(request: Request, user_id: int, queue: asyncio.Queue,
                       ping_interval: float = PING_INTERVAL_SECONDS):
    bus = get_event_bus()
    try:
        yield format_sse(make_event(EventType.PING, {"connected": True}))
        while not await request.is_disconnected():
            try:
                event = await asyncio.wait_for(queue.get(), timeout=ping_interval)
            except asyncio.TimeoutError:
                event = make_event(EventType.PING)
            yield format_sse(event)
    finally:
        bus.unsubscribe(user_id, queue)
        logger.info("Event stream closed for user %s", user_id)


@router.get("/stream")
async def stream_events(request: Request, user: dict = Depends(get_stream_user)):
    queue = get_event_bus().subscribe(user["user_id"])
    logger.info("Event stream opened for user %s", user["user_id"])
    return StreamingResponse(
        event_stream(request, user["user_id"], queue),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}
    )
