from event_notifier.db.models import NotificationKind
from event_notifier.schemas.event_notification_schemas import (
    ComposedNotification,
    EventPayload,
    Recipient,
)

DEFAULT_DEEP_LINK_BASE = "soundbridge://"
DATE_FORMAT = "%a %d %b %Y, %H:%M"


def build_deep_link(event_id: str, base: str = DEFAULT_DEEP_LINK_BASE) -> str:
    return f"{base}event/{event_id}"


def compose(
    event: EventPayload,
    recipient: Recipient,
    distance_km: float,
    deep_link_base: str = DEFAULT_DEEP_LINK_BASE,
) -> ComposedNotification:
    """
    Build the push payload for one (event, recipient) pair.

    Pure and deterministic: the same inputs always give the same payload.
    """
    distance = round(distance_km, 1)
    place = event.location or event.city or f"{distance} km away"
    category = event.category or "Event"
    event_title = event.title or category

    title = f"{category} near you: {place}"
    if event.scheduled_at is not None:
        body = f"{event_title} on {event.scheduled_at.strftime(DATE_FORMAT)}"
    else:
        body = f"{event_title}, date to be announced"

    deep_link = build_deep_link(event.id, deep_link_base)

    return ComposedNotification(
        event_id=event.id,
        user_id=recipient.id,
        address=recipient.push_address or "",
        title=title,
        body=body,
        deep_link=deep_link,
        data={
            "type": NotificationKind.EVENT.value,
            "eventId": event.id,
            "deepLink": deep_link,
            "distanceKm": distance,
        },
    )
