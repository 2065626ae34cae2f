import hmac

from fastapi import Header

from event_notifier.config.settings import settings
from event_notifier.utils.errors import AuthenticationError

WEBHOOK_SECRET_HEADER = "X-Webhook-Secret"


async def verify_webhook_secret(
    x_webhook_secret: str = Header(default="", alias=WEBHOOK_SECRET_HEADER),
) -> None:
    """Reject webhook calls that do not carry the shared secret."""
    if not x_webhook_secret or not hmac.compare_digest(
        x_webhook_secret, settings.WEBHOOK_SECRET
    ):
        raise AuthenticationError("Invalid or missing webhook secret")
