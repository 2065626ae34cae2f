import pytest
import uuid
from datetime import datetime, timezone
from typing import AsyncGenerator, Iterable, List, Optional, Set

import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from event_notifier.db.models import Base, NotificationPreference, Profile
from event_notifier.schemas.event_notification_schemas import (
    EventPayload,
    PushMessage,
    PushTicket,
    Recipient,
)
from event_notifier.services.event_notifications import PushGateway
from event_notifier.utils.errors import PushGatewayError


# Noon UTC: outside the default 22:00-08:00 quiet hours
FIXED_NOW = datetime(2026, 3, 10, 12, 0, 0, tzinfo=timezone.utc)

# Westminster, London
LONDON_LAT, LONDON_LON = 51.5007, -0.1246
# Manchester, roughly 260 km away
MANCHESTER_LAT, MANCHESTER_LON = 53.4808, -2.2426


@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """Create a file-backed test database so concurrent sessions see each other's commits."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        connect_args={"timeout": 30},
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=test_engine, class_=AsyncSession, expire_on_commit=False
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def no_sleep():
    """Records backoff delays instead of sleeping."""
    delays: List[float] = []

    async def sleep(seconds: float) -> None:
        delays.append(seconds)

    sleep.delays = delays  # type: ignore[attr-defined]
    return sleep


class FakePushGateway(PushGateway):
    """
    In-memory push gateway.

    Messages addressed to ``rejected`` get an error ticket; the first
    ``fail_attempts`` calls raise as a whole-batch transport failure.
    """

    def __init__(
        self,
        rejected: Optional[Iterable[str]] = None,
        fail_attempts: int = 0,
        error: str = "DeviceNotRegistered",
    ):
        self.rejected: Set[str] = set(rejected or [])
        self.fail_attempts = fail_attempts
        self.error = error
        self.calls: List[List[PushMessage]] = []

    @property
    def sent(self) -> List[PushMessage]:
        return [message for batch in self.calls for message in batch]

    async def send_batch(self, messages: List[PushMessage]) -> List[PushTicket]:
        self.calls.append(list(messages))
        if len(self.calls) <= self.fail_attempts:
            raise PushGatewayError("Expo push request failed with status 503")

        return [
            PushTicket(address=message.address, status="error", error=self.error)
            if message.address in self.rejected
            else PushTicket(
                address=message.address, status="ok", ticket_id=str(uuid.uuid4())
            )
            for message in messages
        ]


@pytest.fixture
def fake_gateway() -> FakePushGateway:
    return FakePushGateway()


class StaticDirectory:
    """Recipient directory backed by a plain list."""

    def __init__(self, recipients: Iterable[Recipient] = (), fail: bool = False):
        self.recipients = list(recipients)
        self.fail = fail

    async def list_pushable_recipients_near(self, lat, lon, radius_km):
        if self.fail:
            raise RuntimeError("profile store unavailable")
        return list(self.recipients)

    async def get_recipient(self, user_id):
        return next((r for r in self.recipients if r.id == user_id), None)


# Test data factories
def make_recipient(
    lat: float = LONDON_LAT,
    lon: float = LONDON_LON,
    categories: Iterable[str] = ("Gospel Concert",),
    **overrides,
) -> Recipient:
    values = dict(
        id=str(uuid.uuid4()),
        latitude=lat,
        longitude=lon,
        notifications_enabled=True,
        preferred_categories=frozenset(categories),
        quiet_hours_start=22,
        quiet_hours_end=8,
        timezone="UTC",
        push_address=f"ExponentPushToken[{uuid.uuid4().hex[:22]}]",
    )
    values.update(overrides)
    return Recipient(**values)


def make_event(
    lat: Optional[float] = LONDON_LAT,
    lon: Optional[float] = LONDON_LON,
    category: Optional[str] = "Gospel Concert",
    **overrides,
) -> EventPayload:
    values = dict(
        id=str(uuid.uuid4()),
        lat=lat,
        lon=lon,
        category=category,
        scheduled_at=datetime(2026, 3, 14, 19, 30, tzinfo=timezone.utc),
        creator_id=str(uuid.uuid4()),
        title="Sunday Praise Night",
        location="Westminster Central Hall",
        city="London",
    )
    values.update(overrides)
    return EventPayload(**values)


async def create_profile(
    session_factory: async_sessionmaker[AsyncSession],
    lat: Optional[float] = LONDON_LAT,
    lon: Optional[float] = LONDON_LON,
    push_token: Optional[str] = "default",
    categories: Optional[Iterable[str]] = ("Gospel Concert",),
    start_hour: int = 8,
    end_hour: int = 22,
    timezone_name: str = "UTC",
    enabled: bool = True,
    with_preference: bool = True,
) -> Profile:
    """Insert a profile and, unless disabled, its notification preference row."""
    profile_id = str(uuid.uuid4())
    if push_token == "default":
        push_token = f"ExponentPushToken[{uuid.uuid4().hex[:22]}]"

    profile = Profile(
        id=profile_id,
        username=f"user-{profile_id[:8]}",
        display_name="Test User",
        city="London",
        latitude=lat,
        longitude=lon,
        expo_push_token=push_token,
    )

    async with session_factory() as db:
        db.add(profile)
        if with_preference:
            db.add(
                NotificationPreference(
                    id=str(uuid.uuid4()),
                    user_id=profile_id,
                    enabled=enabled,
                    event_notifications_enabled=True,
                    start_hour=start_hour,
                    end_hour=end_hour,
                    timezone=timezone_name,
                    preferred_event_categories=list(categories or []),
                )
            )
        await db.commit()

    return profile
