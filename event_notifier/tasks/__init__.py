from .background import *

__all__ = [
    "notify_nearby_users_task",
]
