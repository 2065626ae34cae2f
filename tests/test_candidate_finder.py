import pytest
import math

from event_notifier.providers.recipient_provider import (
    RecipientProvider,
    quiet_hours_from_window,
)
from event_notifier.services.event_notifications import CandidateFinder
from event_notifier.services.event_notifications.geo import (
    EARTH_RADIUS_KM,
    bounding_box,
    haversine_km,
)

from tests.conftest import (
    LONDON_LAT,
    LONDON_LON,
    MANCHESTER_LAT,
    MANCHESTER_LON,
    StaticDirectory,
    create_profile,
    make_event,
    make_recipient,
)


def _lat_north_of(lat: float, distance_km: float) -> float:
    return lat + math.degrees(distance_km / EARTH_RADIUS_KM)


class TestGeo:
    """Test great-circle distance and the bounding-box pre-filter."""

    def test_haversine_same_point_is_zero(self):
        assert haversine_km(LONDON_LAT, LONDON_LON, LONDON_LAT, LONDON_LON) == 0.0

    def test_haversine_london_to_manchester(self):
        distance = haversine_km(LONDON_LAT, LONDON_LON, MANCHESTER_LAT, MANCHESTER_LON)
        assert 255 < distance < 270

    def test_haversine_is_symmetric(self):
        there = haversine_km(LONDON_LAT, LONDON_LON, MANCHESTER_LAT, MANCHESTER_LON)
        back = haversine_km(MANCHESTER_LAT, MANCHESTER_LON, LONDON_LAT, LONDON_LON)
        assert there == pytest.approx(back)

    def test_bounding_box_contains_radius(self):
        box = bounding_box(LONDON_LAT, LONDON_LON, 20.0)

        assert box.min_lat < LONDON_LAT < box.max_lat
        assert box.min_lon < LONDON_LON < box.max_lon
        # A point 19.9 km due north is inside the box
        assert box.max_lat > _lat_north_of(LONDON_LAT, 19.9)

    def test_bounding_box_near_pole_drops_longitude_bounds(self):
        box = bounding_box(89.95, 10.0, 20.0)

        assert box.max_lat == 90.0
        assert box.min_lon is None and box.max_lon is None

    def test_bounding_box_across_antimeridian_drops_longitude_bounds(self):
        box = bounding_box(0.0, 179.95, 20.0)

        assert box.min_lon is None and box.max_lon is None


class TestCandidateFinder:
    """Test radius search, creator exclusion and malformed events."""

    @pytest.mark.asyncio
    async def test_radius_boundary(self):
        """Users just inside the radius are candidates; users just outside are not."""
        inside = make_recipient(lat=_lat_north_of(LONDON_LAT, 20.0 - 1e-6))
        outside = make_recipient(lat=_lat_north_of(LONDON_LAT, 20.0 + 1e-6))
        finder = CandidateFinder(StaticDirectory([inside, outside]))

        candidates = await finder.find_candidates(make_event(), 20.0)

        assert [c.user_id for c in candidates] == [inside.id]
        assert candidates[0].distance_km == pytest.approx(20.0, abs=1e-3)

    @pytest.mark.asyncio
    async def test_creator_is_excluded(self):
        creator = make_recipient()
        neighbour = make_recipient(lat=51.5010, lon=-0.1250)
        event = make_event(creator_id=creator.id)
        finder = CandidateFinder(StaticDirectory([creator, neighbour]))

        candidates = await finder.find_candidates(event, 20.0)

        assert [c.user_id for c in candidates] == [neighbour.id]

    @pytest.mark.asyncio
    async def test_recipients_without_location_or_address_are_skipped(self):
        no_location = make_recipient(latitude=None, longitude=None)
        no_address = make_recipient(push_address=None)
        reachable = make_recipient()
        finder = CandidateFinder(StaticDirectory([no_location, no_address, reachable]))

        candidates = await finder.find_candidates(make_event(), 20.0)

        assert [c.user_id for c in candidates] == [reachable.id]

    @pytest.mark.asyncio
    async def test_repeated_recipient_appears_once(self):
        recipient = make_recipient()
        finder = CandidateFinder(StaticDirectory([recipient, recipient]))

        candidates = await finder.find_candidates(make_event(), 20.0)

        assert len(candidates) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "overrides",
        [
            {"lat": None},
            {"lon": None},
            {"lat": 123.0},
            {"lon": -200.0},
            {"category": None},
            {"category": "   "},
            {"id": "not-a-uuid"},
        ],
    )
    async def test_malformed_event_yields_no_candidates(self, overrides):
        finder = CandidateFinder(StaticDirectory([make_recipient()]))

        candidates = await finder.find_candidates(make_event(**overrides), 20.0)

        assert candidates == []

    @pytest.mark.asyncio
    async def test_directory_failure_yields_no_candidates(self):
        finder = CandidateFinder(StaticDirectory([make_recipient()], fail=True))

        assert await finder.find_candidates(make_event(), 20.0) == []


class TestRecipientProvider:
    """Test reading recipients from the profile and preference tables."""

    @pytest.mark.asyncio
    async def test_lists_nearby_pushable_profiles(self, session_factory):
        nearby = await create_profile(session_factory, lat=51.5010, lon=-0.1250)
        far = await create_profile(
            session_factory, lat=MANCHESTER_LAT, lon=MANCHESTER_LON
        )
        no_token = await create_profile(session_factory, push_token=None)
        no_location = await create_profile(session_factory, lat=None, lon=None)

        provider = RecipientProvider(session_factory)
        recipients = await provider.list_pushable_recipients_near(
            LONDON_LAT, LONDON_LON, 20.0
        )

        ids = {r.id for r in recipients}
        assert nearby.id in ids
        assert far.id not in ids
        assert no_token.id not in ids
        assert no_location.id not in ids

    @pytest.mark.asyncio
    async def test_preference_window_becomes_quiet_hours(self, session_factory):
        profile = await create_profile(
            session_factory,
            start_hour=9,
            end_hour=21,
            timezone_name="Europe/London",
            categories=["Gospel Concert", "Jazz"],
        )

        recipient = await RecipientProvider(session_factory).get_recipient(profile.id)

        assert recipient is not None
        assert recipient.quiet_hours_start == 21
        assert recipient.quiet_hours_end == 9
        assert recipient.timezone == "Europe/London"
        assert recipient.preferred_categories == frozenset({"Gospel Concert", "Jazz"})
        assert recipient.push_address == profile.expo_push_token

    @pytest.mark.asyncio
    async def test_disabled_preference_is_opted_out(self, session_factory):
        profile = await create_profile(session_factory, enabled=False)

        recipient = await RecipientProvider(session_factory).get_recipient(profile.id)

        assert recipient is not None
        assert recipient.notifications_enabled is False

    @pytest.mark.asyncio
    async def test_missing_preference_row_uses_defaults(self, session_factory):
        profile = await create_profile(session_factory, with_preference=False)

        recipient = await RecipientProvider(session_factory).get_recipient(profile.id)

        assert recipient is not None
        assert recipient.notifications_enabled is True
        assert recipient.preferred_categories == frozenset()
        assert (recipient.quiet_hours_start, recipient.quiet_hours_end) == (22, 8)

    @pytest.mark.asyncio
    async def test_unknown_profile_returns_none(self, session_factory):
        provider = RecipientProvider(session_factory)
        assert await provider.get_recipient("00000000-0000-0000-0000-000000000000") is None

    def test_quiet_hours_from_window(self):
        assert quiet_hours_from_window(8, 22) == (22, 8)
        assert quiet_hours_from_window(0, 0) == (0, 0)
