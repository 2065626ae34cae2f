from datetime import datetime
import uuid
from typing import Any, Dict, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from event_notifier.db.models import NotificationHistory, NotificationKind
from event_notifier.schemas.event_notification_schemas import RecordResult
from event_notifier.utils.datetime_utils import to_naive_utc
from event_notifier.utils.errors import DatabaseError
from event_notifier.utils.logging import get_logger

logger = get_logger()


class HistoryRecorder:
    """Append-only writer for the notification history table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def record(
        self,
        event_id: str,
        user_id: str,
        sent_at: datetime,
        delivered: bool,
        title: Optional[str] = None,
        body: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> RecordResult:
        """
        Insert one history row for (event_id, user_id).

        A second insert for the same pair hits the unique constraint and is
        reported as ``created=False`` rather than raised. Any other integrity
        failure, such as an unknown ``user_id``, raises DatabaseError.
        """
        record_id = str(uuid.uuid4())
        row = NotificationHistory(
            id=record_id,
            event_id=event_id,
            user_id=user_id,
            notification_type=NotificationKind.EVENT.value,
            title=title,
            body=body,
            data=data,
            sent_at=to_naive_utc(sent_at),
            delivered=delivered,
            opened=False,
            error=error,
        )

        async with self.session_factory() as db:
            db.add(row)
            try:
                await db.commit()
            except IntegrityError as e:
                await db.rollback()
                integrity_error = e
            else:
                return RecordResult(created=True, record_id=record_id)

        # Only the (event_id, user_id) unique constraint is a benign conflict
        if await self.has_record(event_id, user_id):
            logger.info(
                f"History already holds event {event_id} for user {user_id}; skipping duplicate"
            )
            return RecordResult(created=False)

        logger.error(
            f"Failed to record history for event {event_id} user {user_id}: {str(integrity_error.orig)}"
        )
        raise DatabaseError("Failed to record notification history") from integrity_error

    async def has_record(self, event_id: str, user_id: str) -> bool:
        async with self.session_factory() as db:
            result = await db.execute(
                select(NotificationHistory.id).where(
                    NotificationHistory.event_id == event_id,
                    NotificationHistory.user_id == user_id,
                )
            )
            return result.scalar_one_or_none() is not None

    async def get_record(
        self, event_id: str, user_id: str
    ) -> Optional[NotificationHistory]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(NotificationHistory).where(
                    NotificationHistory.event_id == event_id,
                    NotificationHistory.user_id == user_id,
                )
            )
            return result.scalar_one_or_none()

    async def mark_delivered(self, event_id: str, user_id: str) -> bool:
        """Flip ``delivered`` from a gateway receipt. Returns False if no row exists."""
        return await self._set_flag(event_id, user_id, delivered=True)

    async def mark_opened(self, event_id: str, user_id: str) -> bool:
        """Flip ``opened`` from a client callback. An opened push was delivered too."""
        return await self._set_flag(event_id, user_id, delivered=True, opened=True)

    async def _set_flag(self, event_id: str, user_id: str, **values: bool) -> bool:
        try:
            async with self.session_factory() as db:
                result = await db.execute(
                    update(NotificationHistory)
                    .where(
                        NotificationHistory.event_id == event_id,
                        NotificationHistory.user_id == user_id,
                    )
                    .values(**values)
                )
                await db.commit()
                return (result.rowcount or 0) > 0
        except SQLAlchemyError as e:
            logger.error(
                f"Failed to update history for event {event_id} user {user_id}: {str(e)}"
            )
            raise DatabaseError("Failed to update notification history")
