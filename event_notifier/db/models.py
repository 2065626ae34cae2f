from typing import Any, Dict, List, Optional
from datetime import datetime
from sqlalchemy import (
    JSON,
    String,
    Boolean,
    Integer,
    Float,
    Text,
    ForeignKey,
    Index,
    func,
    UniqueConstraint,
    CheckConstraint,
    DateTime,
)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
import enum
import uuid

from .custom_types import StringUUID


class Base(DeclarativeBase):
    pass


# Enums
class NotificationKind(enum.Enum):
    EVENT = "event"


# Portable column types: native arrays/JSONB on PostgreSQL, JSON elsewhere
CategoryList = JSON().with_variant(ARRAY(Text), "postgresql")
JsonPayload = JSON().with_variant(JSONB, "postgresql")


# Base model with common audit fields
class AuditMixin:
    """Mixin for common audit fields"""

    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )


# Models
class Profile(Base, AuditMixin):
    """Profile rows as maintained by the profile service; read-only here."""

    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(
        StringUUID, primary_key=True, default=lambda: str(uuid.uuid4())
    )
    username: Mapped[Optional[str]] = mapped_column(String(100))
    display_name: Mapped[Optional[str]] = mapped_column(String(200))
    city: Mapped[Optional[str]] = mapped_column(String(200))
    latitude: Mapped[Optional[float]] = mapped_column(Float)
    longitude: Mapped[Optional[float]] = mapped_column(Float)
    expo_push_token: Mapped[Optional[str]] = mapped_column(String(255))

    # Relationships
    notification_preference: Mapped[Optional["NotificationPreference"]] = (
        relationship(back_populates="profile", uselist=False)
    )

    # Constraints
    __table_args__ = (
        Index("idx_profiles_coordinates", "latitude", "longitude"),
        Index("idx_profiles_push_token", "expo_push_token"),
    )


class NotificationPreference(Base, AuditMixin):
    __tablename__ = "notification_preferences"

    id: Mapped[str] = mapped_column(
        StringUUID, primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id: Mapped[str] = mapped_column(
        StringUUID, ForeignKey("profiles.id"), unique=True, nullable=False
    )

    # Master control
    enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    event_notifications_enabled: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False
    )

    # Allowed delivery window in the user's local time, [start_hour, end_hour)
    start_hour: Mapped[int] = mapped_column(Integer, default=8, nullable=False)
    end_hour: Mapped[int] = mapped_column(Integer, default=22, nullable=False)
    timezone: Mapped[str] = mapped_column(String(64), default="UTC", nullable=False)

    preferred_event_categories: Mapped[List[str]] = mapped_column(
        CategoryList, default=list, nullable=False
    )

    # Relationships
    profile: Mapped["Profile"] = relationship(back_populates="notification_preference")

    # Constraints
    __table_args__ = (
        CheckConstraint(
            "start_hour >= 0 AND start_hour <= 23",
            name="ck_notification_preferences_start_hour",
        ),
        CheckConstraint(
            "end_hour >= 0 AND end_hour <= 23",
            name="ck_notification_preferences_end_hour",
        ),
        Index("idx_notification_preferences_user", "user_id"),
    )


class NotificationHistory(Base, AuditMixin):
    """One row per push attempt; the authority for idempotency and quotas."""

    __tablename__ = "notification_history"

    id: Mapped[str] = mapped_column(
        StringUUID, primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id: Mapped[str] = mapped_column(
        StringUUID, ForeignKey("profiles.id"), nullable=False
    )
    event_id: Mapped[str] = mapped_column(StringUUID, nullable=False)

    # Notification details
    notification_type: Mapped[str] = mapped_column(
        String(50), default=NotificationKind.EVENT.value, nullable=False
    )
    title: Mapped[Optional[str]] = mapped_column(Text)
    body: Mapped[Optional[str]] = mapped_column(Text)
    data: Mapped[Optional[Dict[str, Any]]] = mapped_column(JsonPayload)

    # Delivery tracking
    sent_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    delivered: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    opened: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    error: Mapped[Optional[str]] = mapped_column(Text)

    # Constraints
    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_notification_history_event_user"),
        Index("idx_notification_history_user_sent", "user_id", "sent_at"),
        Index(
            "idx_notification_history_daily_quota",
            "user_id",
            "notification_type",
            "sent_at",
        ),
        Index("idx_notification_history_event", "event_id"),
    )
