from .event_notification_trigger import notify_nearby_users_task

__all__ = [
    "notify_nearby_users_task",
]
