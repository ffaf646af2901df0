# lessonflow/core/config.py
import logging
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import pytz

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Runtime configuration for the lesson engine.

    Business thresholds (join lead, cancel window, retention) live in
    ``core.constants``; only operational knobs are configurable here.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="LESSONFLOW_",
        extra="ignore",
        case_sensitive=False,
    )

    environment: str = Field(default="development")
    database_url: str = Field(default="sqlite:///./lessonflow.db")
    redis_url: Optional[str] = Field(default=None)

    # Aggregator caps
    upcoming_lesson_limit: int = Field(default=5, ge=1)
    course_session_preview_limit: int = Field(default=3, ge=1)
    recent_lesson_limit: int = Field(default=3)

    # Realtime reconciliation
    realtime_poll_interval_seconds: float = Field(default=30.0, gt=0)
    refresh_timeout_seconds: float = Field(default=15.0, gt=0)
    lesson_change_channel: str = Field(default="lesson_changes")

    default_timezone: str = Field(default="UTC")
    pending_ack_urgent_hours: float = Field(default=20.0, gt=0)

    # Celery beat cadence for the recording retention sweep
    recording_sweep_interval_minutes: int = Field(default=60, ge=1)

    @field_validator("recent_lesson_limit")
    @classmethod
    def _validate_recent_limit(cls, value: int) -> int:
        if not 3 <= value <= 5:
            raise ValueError("recent_lesson_limit must be between 3 and 5")
        return value

    @field_validator("default_timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        try:
            pytz.timezone(value)
        except pytz.UnknownTimeZoneError as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() in {"prod", "production"}


settings = Settings()
