"""Time-window calculations shared by every view, policy and state transition.

Every function here is pure and takes ``now`` explicitly. Nothing is cached:
the flags are time-relative, so callers recompute them on each pass instead
of comparing old and new values.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
import math
from typing import Optional

from lessonflow.core.constants import (
    CANCEL_MIN_HOURS,
    COURSE_JOIN_LEAD_MINUTES,
    LESSON_JOIN_LEAD_MINUTES,
    RECORDING_RETENTION_DAYS,
    RESCHEDULE_MIN_MINUTES,
)
from lessonflow.core.time_utils import ensure_utc, local_date

SECONDS_PER_DAY = 86400.0


def minutes_until_start(now: datetime, scheduled_start: datetime) -> float:
    """Minutes from ``now`` to the start; negative once the lesson has started."""
    return (ensure_utc(scheduled_start) - ensure_utc(now)).total_seconds() / 60.0


def hours_until_start(now: datetime, scheduled_start: datetime) -> float:
    return minutes_until_start(now, scheduled_start) / 60.0


def scheduled_end(scheduled_start: datetime, duration_minutes: int) -> datetime:
    return ensure_utc(scheduled_start) + timedelta(minutes=duration_minutes)


def can_join(
    now: datetime,
    scheduled_start: datetime,
    duration_minutes: int,
    lead_minutes: int = LESSON_JOIN_LEAD_MINUTES,
) -> bool:
    """Open from ``lead_minutes`` before start until the scheduled end, both inclusive."""
    minutes = minutes_until_start(now, scheduled_start)
    return -duration_minutes <= minutes <= lead_minutes


def can_cancel(now: datetime, scheduled_start: datetime) -> bool:
    """Cancellation needs at least CANCEL_MIN_HOURS of notice (boundary inclusive)."""
    return hours_until_start(now, scheduled_start) >= CANCEL_MIN_HOURS


def can_reschedule(now: datetime, scheduled_start: datetime) -> bool:
    """Reschedule is offered while more than RESCHEDULE_MIN_MINUTES remain (exclusive)."""
    return minutes_until_start(now, scheduled_start) > RESCHEDULE_MIN_MINUTES


def lesson_is_past(now: datetime, end: datetime) -> bool:
    return ensure_utc(now) > ensure_utc(end)


def recording_days_left(now: datetime, end: datetime) -> int:
    """
    Whole days of recording retention left after the lesson ended.

    Starts at RECORDING_RETENTION_DAYS at the scheduled end and drops by one
    per full elapsed day; zero or below means expired.
    """
    elapsed_seconds = max(0.0, (ensure_utc(now) - ensure_utc(end)).total_seconds())
    return RECORDING_RETENTION_DAYS - math.floor(elapsed_seconds / SECONDS_PER_DAY)


def is_today(now: datetime, scheduled_start: datetime, tz_name: Optional[str] = None) -> bool:
    """Same calendar day in the viewer's timezone (UTC when unknown)."""
    return local_date(scheduled_start, tz_name) == local_date(now, tz_name)


@dataclass(frozen=True)
class LessonWindow:
    """Derived time flags for one lesson or course session at one instant."""

    minutes_until_start: float
    is_today: bool
    can_join: bool
    can_cancel: bool
    can_reschedule: bool
    lesson_is_past: bool
    recording_days_left: int

    @property
    def hours_until_start(self) -> float:
        return self.minutes_until_start / 60.0


def compute_window(
    now: datetime,
    scheduled_start: datetime,
    duration_minutes: int,
    *,
    lead_minutes: int = LESSON_JOIN_LEAD_MINUTES,
    tz_name: Optional[str] = None,
) -> LessonWindow:
    """Compute every time flag for a lesson in one pass."""
    if duration_minutes <= 0:
        raise ValueError("duration_minutes must be positive")

    end = scheduled_end(scheduled_start, duration_minutes)
    return LessonWindow(
        minutes_until_start=minutes_until_start(now, scheduled_start),
        is_today=is_today(now, scheduled_start, tz_name),
        can_join=can_join(now, scheduled_start, duration_minutes, lead_minutes),
        can_cancel=can_cancel(now, scheduled_start),
        can_reschedule=can_reschedule(now, scheduled_start),
        lesson_is_past=lesson_is_past(now, end),
        recording_days_left=recording_days_left(now, end),
    )


def compute_course_window(
    now: datetime,
    scheduled_start: datetime,
    duration_minutes: int,
    *,
    tz_name: Optional[str] = None,
) -> LessonWindow:
    """Same as ``compute_window`` with the shorter group-session join lead."""
    return compute_window(
        now,
        scheduled_start,
        duration_minutes,
        lead_minutes=COURSE_JOIN_LEAD_MINUTES,
        tz_name=tz_name,
    )
