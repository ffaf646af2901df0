# lessonflow/services/lesson_store.py
"""
Async store interface consumed by the availability aggregator.

The aggregator only needs three reads. ``SqlLessonStore`` serves them from
SQLAlchemy by running each repository call in a worker thread with its own
short-lived session, so the event loop is never blocked on I/O.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Dict, List, Protocol, Sequence, TypeVar

from sqlalchemy.orm import Session

from ..database import SessionLocal
from ..models.course_session import CourseSession
from ..models.lesson import Lesson
from ..repositories.course_session_repository import CourseSessionFilter
from ..repositories.factory import RepositoryFactory
from ..repositories.lesson_repository import ArtifactRefs, LessonFilter

logger = logging.getLogger(__name__)

R = TypeVar("R")


class LessonStore(Protocol):
    """Read interface of the external lesson store."""

    async def list_lessons(self, lesson_filter: LessonFilter) -> List[Lesson]:
        ...

    async def list_course_sessions(self, session_filter: CourseSessionFilter) -> List[CourseSession]:
        ...

    async def resolve_artifacts(self, lesson_ids: Sequence[str]) -> Dict[str, ArtifactRefs]:
        """Batch-resolve artifact references in one round trip."""
        ...


class SqlLessonStore:
    """LessonStore backed by the SQLAlchemy repositories."""

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self._session_factory = session_factory

    def _with_session(self, work: Callable[[Session], R]) -> R:
        db = self._session_factory()
        try:
            return work(db)
        finally:
            db.close()

    async def list_lessons(self, lesson_filter: LessonFilter) -> List[Lesson]:
        return await asyncio.to_thread(
            self._with_session,
            lambda db: RepositoryFactory.create_lesson_repository(db).list_lessons(lesson_filter),
        )

    async def list_course_sessions(self, session_filter: CourseSessionFilter) -> List[CourseSession]:
        return await asyncio.to_thread(
            self._with_session,
            lambda db: RepositoryFactory.create_course_session_repository(db).list_sessions(
                session_filter
            ),
        )

    async def resolve_artifacts(self, lesson_ids: Sequence[str]) -> Dict[str, ArtifactRefs]:
        ids = list(lesson_ids)
        if not ids:
            return {}
        return await asyncio.to_thread(
            self._with_session,
            lambda db: RepositoryFactory.create_lesson_repository(db).get_artifact_refs(ids),
        )
