from event_notifier.services.event_notifications import compose
from event_notifier.services.event_notifications.composer import build_deep_link

from tests.conftest import make_event, make_recipient


class TestComposer:
    """Test push payload composition."""

    def test_compose_is_deterministic(self):
        event = make_event()
        recipient = make_recipient()

        first = compose(event, recipient, 0.04)
        second = compose(event, recipient, 0.04)

        assert first == second

    def test_compose_fields(self):
        event = make_event()
        recipient = make_recipient()

        notification = compose(event, recipient, 1.234)

        assert notification.event_id == event.id
        assert notification.user_id == recipient.id
        assert notification.address == recipient.push_address
        assert notification.title == "Gospel Concert near you: Westminster Central Hall"
        assert notification.body == "Sunday Praise Night on Sat 14 Mar 2026, 19:30"
        assert notification.deep_link == f"soundbridge://event/{event.id}"
        assert notification.data == {
            "type": "event",
            "eventId": event.id,
            "deepLink": notification.deep_link,
            "distanceKm": 1.2,
        }

    def test_compose_falls_back_to_city_then_distance(self):
        recipient = make_recipient()

        by_city = compose(make_event(location=None), recipient, 3.0)
        by_distance = compose(make_event(location=None, city=None), recipient, 3.04)

        assert by_city.title == "Gospel Concert near you: London"
        assert by_distance.title == "Gospel Concert near you: 3.0 km away"

    def test_compose_without_date(self):
        notification = compose(make_event(scheduled_at=None), make_recipient(), 1.0)

        assert notification.body == "Sunday Praise Night, date to be announced"

    def test_compose_without_title_uses_category(self):
        notification = compose(make_event(title=None), make_recipient(), 1.0)

        assert notification.body.startswith("Gospel Concert on ")

    def test_custom_deep_link_base(self):
        assert build_deep_link("abc", "https://app.example.org/") == (
            "https://app.example.org/event/abc"
        )
