from pydantic import BaseModel, Field

from event_notifier.config.settings import settings


class EventNotificationConfig(BaseModel):
    """Tunables for one pipeline run."""

    radius_km: float = Field(20.0, gt=0)
    daily_limit: int = Field(3, ge=0)
    quota_window_hours: int = Field(24, ge=1)
    deep_link_base: str = "soundbridge://"
    batch_size: int = Field(100, ge=1, le=100)
    max_in_flight: int = Field(2, ge=1, le=4)
    max_retries: int = Field(3, ge=0)
    retry_backoff_seconds: float = Field(1.0, ge=0)
    send_timeout_seconds: float = Field(10.0, gt=0)
    candidate_stage_timeout_seconds: float = Field(30.0, gt=0)

    @classmethod
    def from_settings(cls) -> "EventNotificationConfig":
        return cls(
            radius_km=settings.EVENT_NOTIFY_RADIUS_KM,
            daily_limit=settings.EVENT_NOTIFY_DAILY_LIMIT,
            quota_window_hours=settings.EVENT_NOTIFY_QUOTA_WINDOW_HOURS,
            deep_link_base=settings.DEEP_LINK_BASE,
            batch_size=settings.PUSH_BATCH_SIZE,
            max_in_flight=settings.PUSH_MAX_IN_FLIGHT,
            max_retries=settings.PUSH_MAX_RETRIES,
            retry_backoff_seconds=settings.PUSH_RETRY_BACKOFF_SECONDS,
            send_timeout_seconds=settings.PUSH_SEND_TIMEOUT_SECONDS,
            candidate_stage_timeout_seconds=settings.CANDIDATE_STAGE_TIMEOUT_SECONDS,
        )
