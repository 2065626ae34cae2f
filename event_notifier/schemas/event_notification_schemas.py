from datetime import datetime
import uuid
from typing import Any, Dict, FrozenSet, Optional

from pydantic import ConfigDict, Field, field_validator

from event_notifier.schemas.camel_base_model import CamelCaseBaseModel as BaseModel


class EventPayload(BaseModel):
    """An "event created" signal as delivered by the event collaborator."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Event ID")
    lat: Optional[float] = Field(None, description="Event latitude")
    lon: Optional[float] = Field(None, description="Event longitude")
    category: Optional[str] = Field(None, description="Event category")
    scheduled_at: Optional[datetime] = Field(None, description="Event start time")
    creator_id: Optional[str] = Field(None, description="Profile ID of the creator")
    title: Optional[str] = Field(None, description="Event title")
    location: Optional[str] = Field(None, description="Venue or location text")
    city: Optional[str] = Field(None, description="Event city")

    @field_validator("id", "creator_id", mode="before")
    def coerce_identifier(cls, v):
        return str(v) if v is not None else v

    @field_validator("category", "title", "location", "city", mode="before")
    def blank_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    def skip_reason(self) -> Optional[str]:
        """Reason this event cannot be processed, or None when it is well formed."""
        try:
            uuid.UUID(self.id)
        except ValueError:
            return "invalid_event_id"
        if self.lat is None or self.lon is None:
            return "missing_coordinates"
        if not (-90.0 <= self.lat <= 90.0) or not (-180.0 <= self.lon <= 180.0):
            return "invalid_coordinates"
        if not self.category:
            return "missing_category"
        return None


class Recipient(BaseModel):
    """A profile that can receive push notifications, with its preferences."""

    model_config = ConfigDict(frozen=True)

    id: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    notifications_enabled: bool = True
    preferred_categories: FrozenSet[str] = frozenset()
    quiet_hours_start: int = Field(0, ge=0, le=23)
    quiet_hours_end: int = Field(0, ge=0, le=23)
    timezone: str = "UTC"
    push_address: Optional[str] = None

    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None


class Candidate(BaseModel):
    user_id: str
    distance_km: float
    recipient: Recipient


class ComposedNotification(BaseModel):
    event_id: str
    user_id: str
    address: str
    title: str
    body: str
    deep_link: str
    data: Dict[str, Any] = Field(default_factory=dict)


class PushMessage(BaseModel):
    address: str
    title: str
    body: str
    data: Dict[str, Any] = Field(default_factory=dict)


class PushTicket(BaseModel):
    address: str
    status: str
    error: Optional[str] = None
    ticket_id: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"


class DispatchResult(BaseModel):
    event_id: str
    user_id: str
    address: str
    delivered: bool
    error: Optional[str] = None
    recorded: bool = True
    # Set when the history write itself failed; the attempt is missing from history
    record_error: Optional[str] = None


class RecordResult(BaseModel):
    created: bool
    record_id: Optional[str] = None
    error: Optional[str] = None


class NotificationCallbackPayload(BaseModel):
    event_id: str = Field(..., description="Event ID of the notification")
    user_id: str = Field(..., description="Recipient profile ID")

    @field_validator("event_id", "user_id", mode="before")
    def validate_uuid(cls, v):
        try:
            return str(uuid.UUID(str(v)))
        except ValueError:
            raise ValueError("must be a UUID")


class RunMetrics(BaseModel):
    """Per-run counters exposed to operators."""

    event_id: str
    candidates_found: int = 0
    exclusions: Dict[str, int] = Field(default_factory=dict)
    notifications_sent: int = 0
    notifications_failed: int = 0
    duplicate_records: int = 0
    record_failures: int = 0
    skipped_reason: Optional[str] = None
    timed_out: bool = False

    def exclude(self, reason: str) -> None:
        self.exclusions[reason] = self.exclusions.get(reason, 0) + 1

    @property
    def total_excluded(self) -> int:
        return sum(self.exclusions.values())
