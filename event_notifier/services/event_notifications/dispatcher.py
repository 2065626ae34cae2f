import asyncio
from datetime import datetime
from typing import Awaitable, Callable, List, Optional, Tuple

from event_notifier.schemas.event_notification_schemas import (
    ComposedNotification,
    DispatchResult,
    PushMessage,
    PushTicket,
    RecordResult,
)
from event_notifier.utils.datetime_utils import utc_now
from event_notifier.utils.errors import PushGatewayError
from event_notifier.utils.logging import get_logger

from .history_recorder import HistoryRecorder
from .push_gateway import MISSING_TICKET_ERROR, PushGateway

logger = get_logger()

DEFAULT_BATCH_SIZE = 100
DEFAULT_MAX_IN_FLIGHT = 2
DEFAULT_MAX_RETRIES = 3


class BatchDispatcher:
    """
    Sends composed notifications to the push gateway in bounded batches.

    - Batches hold at most ``batch_size`` items; at most ``max_in_flight``
      batches are sent concurrently.
    - Items succeed or fail independently inside a batch.
    - A batch whose request fails as a whole is retried ``max_retries`` times
      with exponential backoff, then every item in it is recorded as failed.
    - Every item gets exactly one history record, success or not.
    """

    def __init__(
        self,
        gateway: PushGateway,
        history_recorder: HistoryRecorder,
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_in_flight: int = DEFAULT_MAX_IN_FLIGHT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        backoff_seconds: float = 1.0,
        send_timeout: float = 10.0,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.gateway = gateway
        self.history_recorder = history_recorder
        self.batch_size = batch_size
        self.max_in_flight = max(1, max_in_flight)
        self.max_retries = max(0, max_retries)
        self.backoff_seconds = backoff_seconds
        self.send_timeout = send_timeout
        self.clock = clock
        self.sleep = sleep

    async def dispatch(
        self, notifications: List[ComposedNotification]
    ) -> List[DispatchResult]:
        if not notifications:
            return []

        batches = [
            notifications[start : start + self.batch_size]
            for start in range(0, len(notifications), self.batch_size)
        ]
        semaphore = asyncio.Semaphore(self.max_in_flight)

        async def run_batch(batch_no: int, batch: List[ComposedNotification]):
            async with semaphore:
                return await self._dispatch_batch(batch_no, batch)

        batch_results = await asyncio.gather(
            *(run_batch(batch_no, batch) for batch_no, batch in enumerate(batches))
        )
        return [result for results in batch_results for result in results]

    async def _dispatch_batch(
        self, batch_no: int, batch: List[ComposedNotification]
    ) -> List[DispatchResult]:
        tickets, batch_error = await self._send_with_retry(batch_no, batch)
        sent_at = self.clock()

        results: List[DispatchResult] = []
        for index, notification in enumerate(batch):
            if tickets is None:
                delivered, error = False, batch_error
            else:
                ticket: Optional[PushTicket] = (
                    tickets[index] if index < len(tickets) else None
                )
                if ticket is None:
                    delivered, error = False, MISSING_TICKET_ERROR
                else:
                    delivered, error = ticket.ok, ticket.error

            outcome = await self._record(notification, sent_at, delivered, error)
            results.append(
                DispatchResult(
                    event_id=notification.event_id,
                    user_id=notification.user_id,
                    address=notification.address,
                    delivered=delivered,
                    error=error,
                    recorded=outcome.created,
                    record_error=outcome.error,
                )
            )

        delivered_count = sum(1 for result in results if result.delivered)
        logger.info(
            f"Batch {batch_no}: {delivered_count}/{len(batch)} delivered"
        )
        return results

    async def _send_with_retry(
        self, batch_no: int, batch: List[ComposedNotification]
    ) -> Tuple[Optional[List[PushTicket]], Optional[str]]:
        messages = [
            PushMessage(
                address=notification.address,
                title=notification.title,
                body=notification.body,
                data=notification.data,
            )
            for notification in batch
        ]

        attempt = 0
        while True:
            attempt += 1
            try:
                tickets = await asyncio.wait_for(
                    self.gateway.send_batch(messages), timeout=self.send_timeout
                )
                return tickets, None
            except asyncio.TimeoutError:
                error = f"timed out after {self.send_timeout}s"
            except PushGatewayError as e:
                error = e.message
            except Exception as e:
                logger.exception(f"Unexpected push gateway failure on batch {batch_no}")
                error = str(e) or e.__class__.__name__

            if attempt > self.max_retries:
                logger.error(
                    f"Batch {batch_no} failed after {attempt} attempts: {error}"
                )
                return None, error

            delay = self.backoff_seconds * (2 ** (attempt - 1))
            logger.warning(
                f"Batch {batch_no} attempt {attempt} failed ({error}); retrying in {delay}s"
            )
            await self.sleep(delay)

    async def _record(
        self,
        notification: ComposedNotification,
        sent_at: datetime,
        delivered: bool,
        error: Optional[str],
    ) -> RecordResult:
        try:
            return await self.history_recorder.record(
                event_id=notification.event_id,
                user_id=notification.user_id,
                sent_at=sent_at,
                delivered=delivered,
                title=notification.title,
                body=notification.body,
                data=notification.data,
                error=error,
            )
        except Exception as e:
            logger.error(
                f"Failed to record history for event {notification.event_id} "
                f"user {notification.user_id}: {str(e)}"
            )
            return RecordResult(created=False, error=str(e) or e.__class__.__name__)
