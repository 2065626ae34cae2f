from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx

from event_notifier.config.settings import settings
from event_notifier.schemas.event_notification_schemas import PushMessage, PushTicket
from event_notifier.utils.errors import PushGatewayError
from event_notifier.utils.logging import get_logger

logger = get_logger()

MISSING_TICKET_ERROR = "missing_ticket"


class PushGateway(ABC):
    """Sends one batch of push messages and reports a status per message."""

    @abstractmethod
    async def send_batch(self, messages: List[PushMessage]) -> List[PushTicket]:
        """
        Send ``messages`` in a single request.

        Returns one ticket per message, in order. Raises PushGatewayError when
        the request as a whole fails.
        """
        pass


class ExpoPushGateway(PushGateway):
    """Client for the Expo push API (https://docs.expo.dev/push-notifications/sending-notifications/)."""

    def __init__(
        self,
        url: str = settings.EXPO_PUSH_URL,
        access_token: Optional[str] = settings.EXPO_ACCESS_TOKEN,
        timeout: float = settings.PUSH_SEND_TIMEOUT_SECONDS,
        client: Optional[httpx.AsyncClient] = None,
        channel_id: str = "events",
    ):
        self.url = url
        self.access_token = access_token
        self.timeout = timeout
        self.client = client
        self.channel_id = channel_id

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Accept-Encoding": "gzip, deflate",
            "Content-Type": "application/json",
        }
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers

    def _to_expo_message(self, message: PushMessage) -> Dict[str, Any]:
        return {
            "to": message.address,
            "title": message.title,
            "body": message.body,
            "data": message.data,
            "sound": "default",
            "priority": "high",
            "channelId": self.channel_id,
        }

    async def send_batch(self, messages: List[PushMessage]) -> List[PushTicket]:
        if not messages:
            return []

        payload = [self._to_expo_message(message) for message in messages]

        try:
            if self.client is not None:
                response = await self.client.post(
                    self.url, json=payload, headers=self._headers(), timeout=self.timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(
                        self.url, json=payload, headers=self._headers()
                    )
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as e:
            raise PushGatewayError(
                f"Expo push request failed with status {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise PushGatewayError(f"Expo push request failed: {str(e)}") from e
        except ValueError as e:
            raise PushGatewayError("Expo push response was not valid JSON") from e

        tickets = body.get("data") if isinstance(body, dict) else None
        if not isinstance(tickets, list):
            errors = body.get("errors") if isinstance(body, dict) else None
            raise PushGatewayError(f"Expo push response carried no tickets: {errors}")

        return self._parse_tickets(messages, tickets)

    @staticmethod
    def _parse_tickets(
        messages: List[PushMessage], tickets: List[Dict[str, Any]]
    ) -> List[PushTicket]:
        results: List[PushTicket] = []
        for index, message in enumerate(messages):
            if index >= len(tickets) or not isinstance(tickets[index], dict):
                results.append(
                    PushTicket(
                        address=message.address,
                        status="error",
                        error=MISSING_TICKET_ERROR,
                    )
                )
                continue

            ticket = tickets[index]
            if ticket.get("status") == "ok":
                results.append(
                    PushTicket(
                        address=message.address, status="ok", ticket_id=ticket.get("id")
                    )
                )
            else:
                details = ticket.get("details") or {}
                error = details.get("error") or ticket.get("message") or "unknown_error"
                results.append(
                    PushTicket(address=message.address, status="error", error=error)
                )

        if len(tickets) != len(messages):
            logger.warning(
                f"Expo returned {len(tickets)} tickets for {len(messages)} messages"
            )
        return results
