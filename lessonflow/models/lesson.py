# lessonflow/models/lesson.py
"""
Lesson model.

A lesson is a scheduled one-to-one session between a learner and a teacher.
It carries two independent state axes:

- ``status``: booked -> completed | cancelled (booking lifecycle)
- ``confirmation_status``: pending -> acknowledged | auto_acknowledged -> completed
  (teacher-side acknowledgment)

Both axes are owned by the lesson state machine service; nothing else writes
them. Artifact references (recording, insight) are written asynchronously by
external producers and only ever read by the engine.
"""

from datetime import datetime, timedelta
from enum import Enum
import logging
from typing import Any

from sqlalchemy import CheckConstraint, Column, DateTime, Index, Integer, String, Text
from sqlalchemy.sql import func
import ulid

from ..core.time_utils import ensure_utc
from ..database import Base

logger = logging.getLogger(__name__)


class LessonStatus(str, Enum):
    """Booking lifecycle statuses."""

    BOOKED = "booked"
    COMPLETED = "completed"  # terminal
    CANCELLED = "cancelled"  # terminal


class ConfirmationStatus(str, Enum):
    """Teacher acknowledgment axis, independent of LessonStatus."""

    PENDING = "pending"
    ACKNOWLEDGED = "acknowledged"
    AUTO_ACKNOWLEDGED = "auto_acknowledged"
    COMPLETED = "completed"


class Lesson(Base):
    """Scheduled 1:1 lesson between a learner and a teacher."""

    __tablename__ = "lessons"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))

    # Parties
    learner_id = Column(String(26), nullable=False, index=True)
    teacher_id = Column(String(26), nullable=False, index=True)
    subject_id = Column(String(26), nullable=False)

    # Temporal
    scheduled_start = Column(DateTime(timezone=True), nullable=False, index=True)
    duration_minutes = Column(Integer, nullable=False)

    # State axes
    status = Column(String(20), nullable=False, default=LessonStatus.BOOKED.value, index=True)
    confirmation_status = Column(
        String(20), nullable=False, default=ConfirmationStatus.PENDING.value
    )

    # External resources (provisioned / produced asynchronously)
    room_reference = Column(String(255), nullable=True)
    recording_ref = Column(Text, nullable=True)
    insight_ref = Column(String(255), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    acknowledged_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint("duration_minutes > 0", name="check_lesson_duration_positive"),
        CheckConstraint(
            "status IN ('booked', 'completed', 'cancelled')",
            name="ck_lessons_status",
        ),
        CheckConstraint(
            "confirmation_status IN ('pending', 'acknowledged', 'auto_acknowledged', 'completed')",
            name="ck_lessons_confirmation_status",
        ),
        Index("ix_lessons_pair", "teacher_id", "learner_id"),
    )

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        if not self.status:
            self.status = LessonStatus.BOOKED.value
        if not self.confirmation_status:
            self.confirmation_status = ConfirmationStatus.PENDING.value

    def __repr__(self) -> str:
        return (
            f"<Lesson {self.id}: learner={self.learner_id}, teacher={self.teacher_id}, "
            f"start={self.scheduled_start}, status={self.status}/{self.confirmation_status}>"
        )

    @property
    def starts_at(self) -> datetime:
        """Scheduled start as an aware UTC datetime."""
        return ensure_utc(self.scheduled_start)

    @property
    def scheduled_end(self) -> datetime:
        return self.starts_at + timedelta(minutes=int(self.duration_minutes))

    @property
    def is_terminal(self) -> bool:
        return self.status in (LessonStatus.COMPLETED.value, LessonStatus.CANCELLED.value)
