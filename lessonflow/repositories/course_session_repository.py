# lessonflow/repositories/course_session_repository.py
"""
Course Session Repository.

Visibility of group sessions is decided by enrollment; a session only shows up
for a learner enrolled in its course.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
import logging
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models.course_session import CourseEnrollment, CourseSession
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CourseSessionFilter:
    learner_ids: Tuple[str, ...] = ()
    teacher_id: Optional[str] = None
    from_date: Optional[date] = None
    limit: Optional[int] = None


class CourseSessionRepository(BaseRepository[CourseSession]):
    """Repository for group course sessions and enrollments."""

    def __init__(self, db: Session):
        super().__init__(db, CourseSession)

    def list_sessions(self, session_filter: CourseSessionFilter) -> List[CourseSession]:
        """
        Return course sessions visible to the given learners and/or teacher.

        ``from_date`` is a coarse date pre-filter; callers still compare the
        exact scheduled end against the current instant.
        """
        query = self._build_query()

        if session_filter.learner_ids:
            enrolled_courses = (
                select(CourseEnrollment.course_id)
                .where(CourseEnrollment.learner_id.in_(list(session_filter.learner_ids)))
                .distinct()
            )
            query = query.filter(CourseSession.course_id.in_(enrolled_courses))
        if session_filter.teacher_id:
            query = query.filter(CourseSession.teacher_id == session_filter.teacher_id)
        if session_filter.from_date is not None:
            query = query.filter(CourseSession.session_date >= session_filter.from_date)

        query = query.order_by(
            CourseSession.session_date.asc(),
            CourseSession.schedule_time.asc(),
            CourseSession.id.asc(),
        )
        if session_filter.limit is not None:
            query = query.limit(session_filter.limit)

        return self._execute_query(query)
