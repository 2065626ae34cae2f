from .recipient_provider import RecipientProvider, quiet_hours_from_window

__all__ = ["RecipientProvider", "quiet_hours_from_window"]
