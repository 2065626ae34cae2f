from fastapi import APIRouter, Depends, Request

from event_notifier.db.session import AsyncSessionLocal
from event_notifier.schemas.event_notification_schemas import (
    NotificationCallbackPayload,
)
from event_notifier.services.event_notifications import HistoryRecorder
from event_notifier.utils.errors import NotFoundError
from event_notifier.utils.responses import ResponseBuilder

from .dependencies import verify_webhook_secret

notifications_router = APIRouter(dependencies=[Depends(verify_webhook_secret)])


def get_history_recorder() -> HistoryRecorder:
    return HistoryRecorder(AsyncSessionLocal)


@notifications_router.post("/delivered")
async def handle_notification_delivered(
    request: Request,
    payload: NotificationCallbackPayload,
    recorder: HistoryRecorder = Depends(get_history_recorder),
):
    """Delivery receipt for a push sent to a user."""
    updated = await recorder.mark_delivered(payload.event_id, payload.user_id)
    if not updated:
        raise NotFoundError("No notification found for this event and user")

    return ResponseBuilder.success(
        request=request,
        data={"eventId": payload.event_id, "userId": payload.user_id, "delivered": True},
        message="Delivery recorded",
    )


@notifications_router.post("/opened")
async def handle_notification_opened(
    request: Request,
    payload: NotificationCallbackPayload,
    recorder: HistoryRecorder = Depends(get_history_recorder),
):
    """The user opened the push notification on their device."""
    updated = await recorder.mark_opened(payload.event_id, payload.user_id)
    if not updated:
        raise NotFoundError("No notification found for this event and user")

    return ResponseBuilder.success(
        request=request,
        data={"eventId": payload.event_id, "userId": payload.user_id, "opened": True},
        message="Open recorded",
    )
