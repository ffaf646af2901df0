"""Derived view rows returned by the availability aggregator.

Rows are recomputed on every aggregation pass and never persisted.
"""

from datetime import date, datetime, time
from typing import List, Literal, Optional

from pydantic import Field

from ._strict_base import StrictModel


class LessonViewRow(StrictModel):
    """Upcoming 1:1 lesson with its time-relative flags."""

    lesson_id: str
    learner_id: str
    teacher_id: str
    subject_id: str
    scheduled_start: datetime
    scheduled_end: datetime
    duration_minutes: int
    status: str
    confirmation_status: str
    minutes_until_start: float
    is_today: bool
    can_join: bool
    join_ready: bool = Field(description="can_join and the room has been provisioned")
    can_cancel: bool
    can_reschedule: bool
    lesson_is_past: bool
    room_reference: Optional[str] = None


class CourseSessionViewRow(StrictModel):
    """Upcoming group session the viewer is enrolled in (or teaches)."""

    session_id: str
    course_id: str
    teacher_id: str
    title: str
    session_date: date
    schedule_time: time
    scheduled_start: datetime
    scheduled_end: datetime
    duration_minutes: int
    live_status: str
    minutes_until_start: float
    is_today: bool
    can_join: bool
    join_ready: bool
    room_code: Optional[str] = None


class RecentLessonRow(StrictModel):
    """Finished lesson with recording/insight exposure resolved."""

    lesson_id: str
    learner_id: str
    teacher_id: str
    subject_id: str
    scheduled_start: datetime
    scheduled_end: datetime
    duration_minutes: int
    status: str
    recording_days_left: int
    recording_state: Literal["available", "processing", "expired", "missing"]
    has_recording: bool
    has_insight: bool
    recording_ref: Optional[str] = None
    insight_ref: Optional[str] = None


class UpstreamFailure(StrictModel):
    """A sub-fetch that failed and was replaced by an empty list."""

    source: Literal["lessons", "course_sessions", "recent_lessons", "artifacts"]
    code: str = "UPSTREAM_UNAVAILABLE"
    error_type: Optional[str] = None


class AvailabilityView(StrictModel):
    """The three lists a viewer's dashboard renders, assembled at ``generated_at``."""

    generated_at: datetime
    timezone: str
    upcoming_lessons: List[LessonViewRow] = Field(default_factory=list)
    course_sessions: List[CourseSessionViewRow] = Field(default_factory=list)
    recent_lessons: List[RecentLessonRow] = Field(default_factory=list)
    failures: List[UpstreamFailure] = Field(default_factory=list)

    @property
    def is_partial(self) -> bool:
        return bool(self.failures)


class PendingAcknowledgmentRow(StrictModel):
    lesson_id: str
    learner_id: str
    subject_id: str
    scheduled_start: datetime
    duration_minutes: int
    hours_until_lesson: float
    requested_hours_ago: Optional[float] = None
    is_urgent: bool
    is_overdue: bool


class PendingAcknowledgmentsView(StrictModel):
    teacher_id: str
    generated_at: datetime
    items: List[PendingAcknowledgmentRow] = Field(default_factory=list)
    failures: List[UpstreamFailure] = Field(default_factory=list)


class PastLessonsView(StrictModel):
    generated_at: datetime
    items: List[RecentLessonRow] = Field(default_factory=list)
    failures: List[UpstreamFailure] = Field(default_factory=list)
