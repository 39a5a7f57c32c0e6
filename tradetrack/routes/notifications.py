"""
TradeTrack — Notification API routes, including the per-user SSE stream.
"""

import asyncio
import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from tradetrack.errors import NotFoundError
from tradetrack.routes import dump, get_services, ok
from tradetrack.services.container import Services
from tradetrack.services.notifications import NOTIFICATIONS

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["notifications"])

KEEPALIVE_SECONDS = 25


@router.get("")
async def list_notifications(services: Services = Depends(get_services)):
    return ok(dump(await services.notifications.get_all()))


@router.get("/user/{user_id}")
async def user_notifications(user_id: str, services: Services = Depends(get_services)):
    return ok(dump(await services.notifications.get_by_user(user_id)))


# ── SSE Stream ──────────────────────────────────────────

@router.get("/stream/{user_id}")
async def stream_notifications(
    user_id: str, request: Request, services: Services = Depends(get_services),
):
    """Server-Sent Events: every notification stored for ``user_id`` from now on."""
    broadcaster = services.broadcaster
    queue = broadcaster.subscribe(user_id)
    logger.info(f"📡 SSE subscriber for {user_id}")

    async def event_generator():
        try:
            yield f"data: {json.dumps({'type': 'connected', 'userId': user_id})}\n\n"
            while True:
                if await request.is_disconnected():
                    break
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=KEEPALIVE_SECONDS)
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
                    continue
                yield f"data: {json.dumps({'type': 'notification', 'notification': event})}\n\n"
        finally:
            broadcaster.unsubscribe(user_id, queue)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.get("/{notification_id}")
async def get_notification(notification_id: str, services: Services = Depends(get_services)):
    notification = await services.notifications.get_by_id(notification_id)
    if notification is None:
        raise NotFoundError(NOTIFICATIONS, notification_id)
    return ok(notification.to_doc())


@router.patch("/{notification_id}/read")
async def mark_notification_read(notification_id: str, services: Services = Depends(get_services)):
    notification = await services.notifications.mark_as_read(notification_id)
    return ok(notification.to_doc(), message="Notification marked as read")


@router.delete("/{notification_id}")
async def delete_notification(notification_id: str, services: Services = Depends(get_services)):
    await services.notifications.delete(notification_id)
    return ok(message="Notification deleted")
