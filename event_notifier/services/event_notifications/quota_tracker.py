from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from event_notifier.db.models import NotificationHistory, NotificationKind
from event_notifier.utils.datetime_utils import to_naive_utc, utc_now

DEFAULT_WINDOW_HOURS = 24


class QuotaTracker:
    """
    Counts a user's recent event notifications straight from the history table.

    There is no stored counter: the count over the trailing window is the quota
    state, so it needs no reset at midnight or anywhere else.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Callable[[], datetime] = utc_now,
    ):
        self.session_factory = session_factory
        self.clock = clock

    async def count_recent_notifications(
        self, user_id: str, window_hours: int = DEFAULT_WINDOW_HOURS
    ) -> int:
        window_start = to_naive_utc(self.clock()) - timedelta(hours=window_hours)

        async with self.session_factory() as db:
            result = await db.execute(
                select(func.count(NotificationHistory.id)).where(
                    NotificationHistory.user_id == user_id,
                    NotificationHistory.notification_type
                    == NotificationKind.EVENT.value,
                    NotificationHistory.sent_at >= window_start,
                )
            )
            return int(result.scalar_one())
