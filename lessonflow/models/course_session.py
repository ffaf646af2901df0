# lessonflow/models/course_session.py
"""
Group course sessions.

A course session is one occurrence of a recurring group class. Unlike 1:1
lessons it has no per-learner confirmation axis: enrollment decides who can
see it, and an operator-controlled ``live_status`` decides when the room code
is handed out.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Integer,
    String,
    Time,
    UniqueConstraint,
)
from sqlalchemy.sql import func
import ulid

from ..core.time_utils import combine_utc
from ..database import Base


class LiveStatus(str, Enum):
    SCHEDULED = "scheduled"
    LIVE = "live"
    ENDED = "ended"


class CourseSession(Base):
    """One occurrence of a group course."""

    __tablename__ = "course_sessions"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    course_id = Column(String(26), nullable=False, index=True)
    teacher_id = Column(String(26), nullable=False, index=True)
    title = Column(String(255), nullable=False, default="")

    # Date and wall time are stored in UTC
    session_date = Column(Date, nullable=False, index=True)
    schedule_time = Column(Time, nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=60)

    live_status = Column(String(20), nullable=False, default=LiveStatus.SCHEDULED.value)
    room_code = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (
        CheckConstraint("duration_minutes > 0", name="check_course_session_duration_positive"),
        CheckConstraint(
            "live_status IN ('scheduled', 'live', 'ended')",
            name="ck_course_sessions_live_status",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<CourseSession {self.id}: course={self.course_id}, "
            f"date={self.session_date} {self.schedule_time}, live={self.live_status}>"
        )

    @property
    def starts_at(self) -> datetime:
        return combine_utc(self.session_date, self.schedule_time)

    @property
    def scheduled_end(self) -> datetime:
        return self.starts_at + timedelta(minutes=int(self.duration_minutes))

    @property
    def exposed_room_code(self) -> Optional[str]:
        """Room code is only handed out while the session is live."""
        if self.live_status == LiveStatus.LIVE.value:
            return self.room_code
        return None


class CourseEnrollment(Base):
    """Links a learner to a course; gates course session visibility."""

    __tablename__ = "course_enrollments"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    course_id = Column(String(26), nullable=False, index=True)
    learner_id = Column(String(26), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("course_id", "learner_id", name="uq_course_enrollment_learner"),
    )
