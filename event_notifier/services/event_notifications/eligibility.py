from datetime import datetime
import enum
from typing import Callable, Dict, List, Optional

from event_notifier.schemas.event_notification_schemas import (
    Candidate,
    EventPayload,
    RunMetrics,
)
from event_notifier.utils.datetime_utils import local_hour, utc_now
from event_notifier.utils.logging import get_logger

from .history_recorder import HistoryRecorder
from .quota_tracker import DEFAULT_WINDOW_HOURS, QuotaTracker

logger = get_logger()

DEFAULT_DAILY_LIMIT = 3


class ExclusionReason(str, enum.Enum):
    DUPLICATE_CANDIDATE = "duplicate_candidate"
    OPTED_OUT = "opted_out"
    CATEGORY_MISMATCH = "category_mismatch"
    QUIET_HOURS = "quiet_hours"
    ALREADY_NOTIFIED = "already_notified"
    QUOTA_EXCEEDED = "quota_exceeded"
    LOOKUP_FAILED = "lookup_failed"


def hour_in_window(hour: int, start: int, end: int) -> bool:
    """
    Whether ``hour`` lies in the circular interval [start, end) on a 24h clock.

    A window with start == end is empty.
    """
    if start == end:
        return False
    if start < end:
        return start <= hour < end
    # Wraps midnight, e.g. [22, 6)
    return hour >= start or hour < end


class EligibilityFilter:
    """
    Ordered, short-circuiting predicate chain over candidates:
    opt-in, category, quiet hours, already notified, daily quota.
    """

    def __init__(
        self,
        quota_tracker: QuotaTracker,
        history_recorder: HistoryRecorder,
        daily_limit: int = DEFAULT_DAILY_LIMIT,
        window_hours: int = DEFAULT_WINDOW_HOURS,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.quota_tracker = quota_tracker
        self.history_recorder = history_recorder
        self.daily_limit = daily_limit
        self.window_hours = window_hours
        self.clock = clock

    async def filter(
        self,
        candidates: List[Candidate],
        event: EventPayload,
        metrics: Optional[RunMetrics] = None,
    ) -> List[Candidate]:
        """Return the candidates that pass every predicate, in input order."""
        eligible: List[Candidate] = []
        # Notifications admitted per user in this run, added on top of history
        admitted: Dict[str, int] = {}
        now = self.clock()

        # Each evaluation sees the admissions made before it
        for candidate in candidates:
            reason = await self.evaluate(candidate, event, now, admitted)
            if reason is not None:
                if metrics is not None:
                    metrics.exclude(reason.value)
                logger.debug(
                    f"Excluded user {candidate.user_id} from event {event.id}: {reason.value}"
                )
                continue

            admitted[candidate.user_id] = admitted.get(candidate.user_id, 0) + 1
            eligible.append(candidate)

        return eligible

    async def evaluate(
        self,
        candidate: Candidate,
        event: EventPayload,
        now: datetime,
        admitted: Dict[str, int],
    ) -> Optional[ExclusionReason]:
        recipient = candidate.recipient

        # One notification per (event, user) even if the candidate list repeats a user
        if admitted.get(candidate.user_id):
            return ExclusionReason.DUPLICATE_CANDIDATE

        if not recipient.notifications_enabled:
            return ExclusionReason.OPTED_OUT

        if not event.category or event.category not in recipient.preferred_categories:
            return ExclusionReason.CATEGORY_MISMATCH

        hour = local_hour(now, recipient.timezone)
        if hour_in_window(hour, recipient.quiet_hours_start, recipient.quiet_hours_end):
            return ExclusionReason.QUIET_HOURS

        try:
            if await self.history_recorder.has_record(event.id, candidate.user_id):
                return ExclusionReason.ALREADY_NOTIFIED

            sent_recently = await self.quota_tracker.count_recent_notifications(
                candidate.user_id, self.window_hours
            )
        except Exception as e:
            # Unknown history or quota excludes the candidate
            logger.warning(
                f"Eligibility lookup failed for user {candidate.user_id}: {str(e)}"
            )
            return ExclusionReason.LOOKUP_FAILED

        if sent_recently + admitted.get(candidate.user_id, 0) >= self.daily_limit:
            return ExclusionReason.QUOTA_EXCEEDED

        return None
