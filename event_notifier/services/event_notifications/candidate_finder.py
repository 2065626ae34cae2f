from typing import List, Optional, Protocol

from event_notifier.schemas.event_notification_schemas import (
    Candidate,
    EventPayload,
    Recipient,
)
from event_notifier.utils.logging import get_logger

from .geo import haversine_km

logger = get_logger()

DEFAULT_RADIUS_KM = 20.0


class RecipientDirectory(Protocol):
    async def list_pushable_recipients_near(
        self, lat: float, lon: float, radius_km: float
    ) -> List[Recipient]: ...

    async def get_recipient(self, user_id: str) -> Optional[Recipient]: ...


class CandidateFinder:
    """Finds recipients within a radius of an event."""

    def __init__(self, directory: RecipientDirectory):
        self.directory = directory

    async def find_candidates(
        self, event: EventPayload, max_radius_km: float = DEFAULT_RADIUS_KM
    ) -> List[Candidate]:
        """
        Recipients with a location and push address within ``max_radius_km`` of
        the event, excluding its creator.

        Malformed events and directory failures yield an empty list; this method
        never raises.
        """
        skip_reason = event.skip_reason()
        if skip_reason:
            logger.warning(
                f"Skipping candidate search for event {event.id}: {skip_reason}"
            )
            return []

        try:
            recipients = await self.directory.list_pushable_recipients_near(
                event.lat, event.lon, max_radius_km  # type: ignore[arg-type]
            )
        except Exception as e:
            logger.error(f"Candidate lookup failed for event {event.id}: {str(e)}")
            return []

        candidates: List[Candidate] = []
        seen = set()
        for recipient in recipients:
            if recipient.id in seen:
                continue
            if not recipient.has_location or not recipient.push_address:
                continue
            if event.creator_id is not None and recipient.id == event.creator_id:
                continue

            distance_km = haversine_km(
                event.lat,  # type: ignore[arg-type]
                event.lon,  # type: ignore[arg-type]
                recipient.latitude,  # type: ignore[arg-type]
                recipient.longitude,  # type: ignore[arg-type]
            )
            if distance_km > max_radius_km:
                continue

            seen.add(recipient.id)
            candidates.append(
                Candidate(
                    user_id=recipient.id, distance_km=distance_km, recipient=recipient
                )
            )

        logger.info(
            f"Found {len(candidates)} candidates within {max_radius_km} km of event {event.id}"
        )
        return candidates
