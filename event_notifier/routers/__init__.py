from .webhook import webhook_router

__all__ = ["webhook_router"]
