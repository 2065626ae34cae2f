from fastapi import APIRouter, Depends, Request, status

from event_notifier.schemas.event_notification_schemas import EventPayload
from event_notifier.tasks import notify_nearby_users_task
from event_notifier.utils.logging import get_logger
from event_notifier.utils.responses import ResponseBuilder

from .dependencies import verify_webhook_secret

logger = get_logger()

events_router = APIRouter(dependencies=[Depends(verify_webhook_secret)])


@events_router.post("/created")
async def handle_event_created(request: Request, payload: EventPayload):
    """
    Accept an "event created" signal and hand it to the background worker.

    Returns as soon as the task is queued. The same event may be posted more
    than once; duplicates are harmless.
    """
    request_id = request.state.request_id

    skip_reason = payload.skip_reason()
    if skip_reason:
        # Malformed events are acknowledged and dropped
        logger.warning(f"Ignoring event {payload.id}: {skip_reason}")
        return ResponseBuilder.success(
            request=request,
            data={"eventId": payload.id, "queued": False, "reason": skip_reason},
            message="Event skipped",
            status_code=status.HTTP_202_ACCEPTED,
        )

    notify_nearby_users_task.delay(  # type: ignore
        request_id=request_id,
        event=payload.model_dump(by_alias=True),
    )

    return ResponseBuilder.success(
        request=request,
        data={"eventId": payload.id, "queued": True},
        message="Event queued for proximity notifications",
        status_code=status.HTTP_202_ACCEPTED,
    )
