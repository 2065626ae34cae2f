import asyncio
from datetime import datetime
from typing import Awaitable, Callable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from event_notifier.schemas.event_notification_schemas import (
    Candidate,
    EventPayload,
    RunMetrics,
)
from event_notifier.utils.datetime_utils import utc_now
from event_notifier.utils.logging import get_logger

from .candidate_finder import CandidateFinder, RecipientDirectory
from .composer import compose
from .config import EventNotificationConfig
from .dispatcher import BatchDispatcher
from .eligibility import EligibilityFilter
from .history_recorder import HistoryRecorder
from .push_gateway import PushGateway
from .quota_tracker import QuotaTracker

logger = get_logger()


class EventNotificationPipeline:
    """
    One run per "event created" signal: find nearby candidates, filter them,
    compose payloads, dispatch, and record every attempt.

    Runs share nothing but the history table, so any number of them may be in
    flight at once.
    """

    def __init__(
        self,
        directory: RecipientDirectory,
        session_factory: async_sessionmaker[AsyncSession],
        gateway: PushGateway,
        config: Optional[EventNotificationConfig] = None,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config or EventNotificationConfig.from_settings()
        self.clock = clock

        self.history_recorder = HistoryRecorder(session_factory)
        self.quota_tracker = QuotaTracker(session_factory, clock=clock)
        self.candidate_finder = CandidateFinder(directory)
        self.eligibility_filter = EligibilityFilter(
            quota_tracker=self.quota_tracker,
            history_recorder=self.history_recorder,
            daily_limit=self.config.daily_limit,
            window_hours=self.config.quota_window_hours,
            clock=clock,
        )
        self.dispatcher = BatchDispatcher(
            gateway=gateway,
            history_recorder=self.history_recorder,
            batch_size=self.config.batch_size,
            max_in_flight=self.config.max_in_flight,
            max_retries=self.config.max_retries,
            backoff_seconds=self.config.retry_backoff_seconds,
            send_timeout=self.config.send_timeout_seconds,
            clock=clock,
            sleep=sleep,
        )

    async def run(self, event: EventPayload) -> RunMetrics:
        metrics = RunMetrics(event_id=event.id)

        skip_reason = event.skip_reason()
        if skip_reason:
            metrics.skipped_reason = skip_reason
            logger.warning(f"Skipping event {event.id}: {skip_reason}")
            return metrics

        try:
            eligible = await asyncio.wait_for(
                self._select_recipients(event, metrics),
                timeout=self.config.candidate_stage_timeout_seconds,
            )
        except asyncio.TimeoutError:
            # Nothing has been dispatched yet; the run is dropped as a whole
            metrics.timed_out = True
            logger.warning(
                f"Candidate stage for event {event.id} exceeded "
                f"{self.config.candidate_stage_timeout_seconds}s; dropping run"
            )
            return metrics

        notifications = [
            compose(
                event,
                candidate.recipient,
                candidate.distance_km,
                deep_link_base=self.config.deep_link_base,
            )
            for candidate in eligible
        ]

        results = await self.dispatcher.dispatch(notifications)
        for result in results:
            if result.delivered:
                metrics.notifications_sent += 1
            else:
                metrics.notifications_failed += 1
            if result.record_error is not None:
                metrics.record_failures += 1
            elif not result.recorded:
                metrics.duplicate_records += 1

        logger.info(
            f"Event {event.id} run complete: candidates={metrics.candidates_found} "
            f"excluded={metrics.exclusions} sent={metrics.notifications_sent} "
            f"failed={metrics.notifications_failed} duplicates={metrics.duplicate_records} "
            f"record_failures={metrics.record_failures}"
        )
        if metrics.record_failures:
            logger.error(
                f"Event {event.id}: {metrics.record_failures} sends are missing from notification history"
            )
        return metrics

    async def _select_recipients(
        self, event: EventPayload, metrics: RunMetrics
    ) -> List[Candidate]:
        candidates = await self.candidate_finder.find_candidates(
            event, self.config.radius_km
        )
        metrics.candidates_found = len(candidates)
        if not candidates:
            return []
        return await self.eligibility_filter.filter(candidates, event, metrics)
