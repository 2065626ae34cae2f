from starlette.middleware.base import BaseHTTPMiddleware
from fastapi import Request, Response
from typing import Callable, Optional
import uuid
from event_notifier.utils.context import reset_request_id, set_request_id

REQUEST_ID_HEADER = "X-Request-ID"
# Set by the event service on every webhook delivery, retries included
DELIVERY_ID_HEADER = "X-Webhook-Delivery-ID"


def _incoming_request_id(request: Request) -> Optional[str]:
    for header in (REQUEST_ID_HEADER, DELIVERY_ID_HEADER):
        try:
            return str(uuid.UUID(request.headers.get(header)))
        except (ValueError, TypeError):
            continue
    return None


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Correlates a webhook call with the Celery run it enqueues.

    The id is taken from ``X-Request-ID`` or the sender's delivery id, else
    generated, and is echoed back on the response.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = _incoming_request_id(request) or str(uuid.uuid4())
        request.state.request_id = request_id

        token = set_request_id(request_id)
        try:
            response = await call_next(request)
        finally:
            reset_request_id(token)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
