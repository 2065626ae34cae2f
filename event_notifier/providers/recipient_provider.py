from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from event_notifier.db.models import NotificationPreference, Profile
from event_notifier.schemas.event_notification_schemas import Recipient
from event_notifier.services.event_notifications.geo import bounding_box


class RecipientProvider:
    """Reads pushable recipients from the profile and preference tables."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def list_pushable_recipients_near(
        self, lat: float, lon: float, radius_km: float
    ) -> List[Recipient]:
        """
        Recipients with coordinates and a push token inside the bounding box of
        the given radius. The box over-selects; callers apply the exact distance.
        """
        box = bounding_box(lat, lon, radius_km)

        query = (
            select(Profile, NotificationPreference)
            .outerjoin(
                NotificationPreference, NotificationPreference.user_id == Profile.id
            )
            .where(
                Profile.expo_push_token.is_not(None),
                Profile.latitude.is_not(None),
                Profile.longitude.is_not(None),
                Profile.latitude.between(box.min_lat, box.max_lat),
            )
        )
        if box.min_lon is not None and box.max_lon is not None:
            query = query.where(Profile.longitude.between(box.min_lon, box.max_lon))

        async with self.session_factory() as db:
            result = await db.execute(query)
            rows = result.all()

        return [self._to_recipient(profile, preference) for profile, preference in rows]

    async def get_recipient(self, user_id: str) -> Optional[Recipient]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(Profile, NotificationPreference)
                .outerjoin(
                    NotificationPreference,
                    NotificationPreference.user_id == Profile.id,
                )
                .where(Profile.id == user_id)
            )
            row = result.first()

        if not row:
            return None
        profile, preference = row
        return self._to_recipient(profile, preference)

    @staticmethod
    def _to_recipient(
        profile: Profile, preference: Optional[NotificationPreference]
    ) -> Recipient:
        if preference is None:
            # No preference row: enabled with defaults, but no categories chosen
            return Recipient(
                id=profile.id,
                latitude=profile.latitude,
                longitude=profile.longitude,
                notifications_enabled=True,
                preferred_categories=frozenset(),
                quiet_hours_start=22,
                quiet_hours_end=8,
                timezone="UTC",
                push_address=profile.expo_push_token,
            )

        quiet_start, quiet_end = quiet_hours_from_window(
            preference.start_hour, preference.end_hour
        )
        return Recipient(
            id=profile.id,
            latitude=profile.latitude,
            longitude=profile.longitude,
            notifications_enabled=bool(
                preference.enabled and preference.event_notifications_enabled
            ),
            preferred_categories=frozenset(preference.preferred_event_categories or []),
            quiet_hours_start=quiet_start,
            quiet_hours_end=quiet_end,
            timezone=preference.timezone or "UTC",
            push_address=profile.expo_push_token,
        )


def quiet_hours_from_window(start_hour: int, end_hour: int) -> Tuple[int, int]:
    """Allowed window [start, end) maps to quiet hours [end, start)."""
    return end_hour % 24, start_hour % 24
