import asyncio
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from event_notifier.celery import celery
from event_notifier.providers.recipient_provider import RecipientProvider
from event_notifier.services.event_notifications import (
    EventNotificationPipeline,
    ExpoPushGateway,
    PushGateway,
    TriggerAdapter,
)
from event_notifier.utils.context import set_request_id
from event_notifier.utils.logging import get_logger


@celery.task(bind=True, max_retries=0, ignore_result=False)
def notify_nearby_users_task(self, request_id: str, event: Dict[str, Any]):
    """
    Celery task that runs the proximity notification pipeline for one event.

    Enqueued once per "event created" signal. The signal may arrive more than
    once; repeated runs are safe because the history table admits a single
    record per (event, user).

    Args:
        request_id: The request ID from the originating webhook call
        event: Event payload (camelCase or snake_case keys)
    """
    return asyncio.run(_async_notify_nearby_users(request_id, event))


async def _async_notify_nearby_users(
    request_id: str,
    event: Dict[str, Any],
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    gateway: Optional[PushGateway] = None,
):
    set_request_id(request_id)
    logger = get_logger().bind(request_id=request_id)

    owns_engine = session_factory is None
    if session_factory is None:
        from event_notifier.db.session import AsyncSessionLocal

        session_factory = AsyncSessionLocal

    try:
        pipeline = EventNotificationPipeline(
            directory=RecipientProvider(session_factory),
            session_factory=session_factory,
            gateway=gateway or ExpoPushGateway(),
        )
        adapter = TriggerAdapter(pipeline)
        metrics = await adapter.handle(event)

        if metrics is None:
            return {
                "success": False,
                "error": "Event notification run failed",
                "event_id": event.get("id") if isinstance(event, dict) else None,
                "request_id": request_id,
            }

        logger.info(f"Event notification task finished for event {metrics.event_id}")
        return {
            "success": True,
            **metrics.model_dump(),
            "request_id": request_id,
        }
    finally:
        if owns_engine:
            # Pooled connections are bound to this asyncio.run loop
            from event_notifier.db.session import engine

            await engine.dispose()
