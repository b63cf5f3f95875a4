"""Real-time CGM update stream via Server-Sent Events.

Each connection subscribes to the event bus for as long as it is open
and relays every published payload as one `data:` frame.
"""

import asyncio
import json
from typing import Any

from fastapi import APIRouter, HTTPException, Request, status
from fastapi.responses import StreamingResponse

from sugarwatch.config import settings
from sugarwatch.core.auth import ParentUser
from sugarwatch.dependencies import EventBusDep
from sugarwatch.logging_config import get_logger
from sugarwatch.services.event_bus import (
    DEXCOM_DATA_UPDATED,
    EventBus,
    SubscriberLimitError,
    SubscriptionClosed,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/api/dexcom", tags=["events"])

HEARTBEAT_FRAME = ": ping\n\n"

# Reconnect delay suggested to clients turned away at the subscriber limit
LIMIT_RETRY_MS = 30_000

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def format_sse_event(data: Any) -> str:
    """Format a payload as a single SSE `data:` frame."""
    return f"data: {json.dumps(data)}\n\n"


async def generate_event_stream(
    bus: EventBus,
    request: Request,
    heartbeat_interval: float | None = None,
    max_queue_size: int | None = None,
):
    """Async generator yielding SSE frames for one client.

    Subscribes on first iteration, announces itself with a `connected`
    frame, then relays payloads in publish order. While idle, a heartbeat
    comment is sent every `heartbeat_interval` seconds and the client is
    checked for disconnect. The subscription is always released on exit.
    """
    if heartbeat_interval is None:
        heartbeat_interval = settings.sse_heartbeat_interval_seconds
    if max_queue_size is None:
        max_queue_size = settings.sse_subscriber_queue_size

    try:
        subscription = bus.subscribe(DEXCOM_DATA_UPDATED, max_queue_size=max_queue_size)
    except SubscriberLimitError as e:
        # Lost the race against the pre-check in the route; the 200 is
        # already committed, so say why the stream ends
        logger.warning("SSE stream refused", error=str(e))
        yield f"retry: {LIMIT_RETRY_MS}\n" + format_sse_event(
            {"type": "error", "message": "Too many open event streams"}
        )
        return

    logger.info("SSE stream opened", subscription_id=subscription.id)

    try:
        yield format_sse_event({"type": "connected"})

        while True:
            try:
                payload = await asyncio.wait_for(
                    subscription.get(), timeout=heartbeat_interval
                )
            except asyncio.TimeoutError:
                if await request.is_disconnected():
                    logger.info("SSE client disconnected", subscription_id=subscription.id)
                    break
                yield HEARTBEAT_FRAME
                continue
            except SubscriptionClosed:
                if subscription.evicted:
                    logger.warning(
                        "SSE subscriber evicted for falling behind",
                        subscription_id=subscription.id,
                    )
                break

            yield format_sse_event(payload)

    except asyncio.CancelledError:
        logger.info("SSE stream cancelled", subscription_id=subscription.id)
        raise
    finally:
        bus.unsubscribe(subscription)
        logger.info("SSE stream closed", subscription_id=subscription.id)


@router.get(
    "/events",
    responses={
        200: {
            "description": "SSE stream of CGM updates",
            "content": {"text/event-stream": {}},
        },
        401: {"description": "Not authenticated"},
        403: {"description": "Not a parent"},
        503: {"description": "Too many open streams"},
    },
)
async def stream_events(
    request: Request,
    current_user: ParentUser,
    bus: EventBusDep,
) -> StreamingResponse:
    """Stream glucose updates, auth errors and new messages as they happen."""
    if bus.max_subscribers is not None and bus.subscriber_count() >= bus.max_subscribers:
        logger.warning(
            "SSE stream rejected, subscriber limit reached",
            user_id=str(current_user.id),
            max_subscribers=bus.max_subscribers,
        )
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Too many open event streams",
        )

    logger.info("SSE stream requested", user_id=str(current_user.id))

    return StreamingResponse(
        generate_event_stream(bus, request),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
