from fastapi import APIRouter

from .events import events_router
from .notifications import notifications_router

webhook_router = APIRouter()

webhook_router.include_router(events_router, prefix="/events", tags=["Event Webhook"])
webhook_router.include_router(
    notifications_router, prefix="/notifications", tags=["Notification Callbacks"]
)
