# lessonflow/repositories/lesson_repository.py
"""
Lesson Repository.

Data access for lessons, including the conditional status write that the
state machine relies on: a transition only succeeds if the row still holds
the state the caller read, so two concurrent cancel/acknowledge calls can
never both win.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.lesson import ConfirmationStatus, Lesson, LessonStatus
from .base_repository import BaseRepository


@dataclass(frozen=True)
class LessonFilter:
    """Query filter for ``list_lessons``.

    ``learner_ids`` and ``teacher_id`` are combined with AND when both are set.
    Ordering is by (scheduled_start, id) so equal timestamps stay deterministic.
    """

    learner_ids: Tuple[str, ...] = ()
    teacher_id: Optional[str] = None
    statuses: Tuple[str, ...] = ()
    confirmation_statuses: Tuple[str, ...] = ()
    start_from: Optional[datetime] = None
    start_before: Optional[datetime] = None
    descending: bool = False
    limit: Optional[int] = None


@dataclass(frozen=True)
class ArtifactRefs:
    recording_ref: Optional[str] = None
    insight_ref: Optional[str] = None


class LessonRepository(BaseRepository[Lesson]):
    """Repository for lesson reads and guarded state writes."""

    def __init__(self, db: Session):
        super().__init__(db, Lesson)

    def get_current(self, lesson_id: str) -> Optional[Lesson]:
        """Load a lesson, overwriting any stale identity-mapped state."""
        try:
            return self.db.get(Lesson, lesson_id, populate_existing=True)
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading lesson {lesson_id}: {str(e)}")
            raise RepositoryException(f"Failed to load lesson: {str(e)}")

    def list_lessons(self, lesson_filter: LessonFilter) -> List[Lesson]:
        """Return lessons matching the filter, ordered by start then id."""
        query = self._build_query()

        if lesson_filter.learner_ids:
            query = query.filter(Lesson.learner_id.in_(list(lesson_filter.learner_ids)))
        if lesson_filter.teacher_id:
            query = query.filter(Lesson.teacher_id == lesson_filter.teacher_id)
        if lesson_filter.statuses:
            query = query.filter(Lesson.status.in_(list(lesson_filter.statuses)))
        if lesson_filter.confirmation_statuses:
            query = query.filter(
                Lesson.confirmation_status.in_(list(lesson_filter.confirmation_statuses))
            )
        if lesson_filter.start_from is not None:
            query = query.filter(Lesson.scheduled_start >= lesson_filter.start_from)
        if lesson_filter.start_before is not None:
            query = query.filter(Lesson.scheduled_start < lesson_filter.start_before)

        if lesson_filter.descending:
            query = query.order_by(Lesson.scheduled_start.desc(), Lesson.id.asc())
        else:
            query = query.order_by(Lesson.scheduled_start.asc(), Lesson.id.asc())

        if lesson_filter.limit is not None:
            query = query.limit(lesson_filter.limit)

        return self._execute_query(query)

    def get_artifact_refs(self, lesson_ids: Sequence[str]) -> Dict[str, ArtifactRefs]:
        """Resolve recording/insight references for many lessons in one query."""
        if not lesson_ids:
            return {}
        try:
            rows = (
                self.db.query(Lesson.id, Lesson.recording_ref, Lesson.insight_ref)
                .filter(Lesson.id.in_(list(lesson_ids)))
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error resolving artifact refs: {str(e)}")
            raise RepositoryException(f"Failed to resolve artifacts: {str(e)}")
        return {
            row.id: ArtifactRefs(recording_ref=row.recording_ref, insight_ref=row.insight_ref)
            for row in rows
        }

    def count_prior_engaged_lessons(
        self, *, teacher_id: str, learner_id: str, exclude_lesson_id: str
    ) -> int:
        """
        Count earlier lessons of a teacher/learner pair that were acknowledged or completed.

        An acknowledged lesson that later completes is counted once (it is one
        row); the OR reproduces the existing "first lesson" rule as-is.
        """
        query = self._build_query().filter(
            Lesson.teacher_id == teacher_id,
            Lesson.learner_id == learner_id,
            Lesson.id != exclude_lesson_id,
            or_(
                Lesson.status == LessonStatus.COMPLETED.value,
                Lesson.confirmation_status == ConfirmationStatus.ACKNOWLEDGED.value,
            ),
        )
        try:
            return query.count()
        except SQLAlchemyError as e:
            self.logger.error(f"Error counting prior lessons: {str(e)}")
            raise RepositoryException(f"Failed to count prior lessons: {str(e)}")

    def update_status_if_current(
        self,
        lesson_id: str,
        *,
        expected_status: str,
        expected_confirmation: str,
        **values: Any,
    ) -> bool:
        """
        Conditionally update a lesson row.

        Executes ``UPDATE lessons SET ... WHERE id = :id AND status = :expected
        AND confirmation_status = :expected_confirmation``.

        Returns:
            True if exactly one row changed, False if the row no longer holds
            the expected state (optimistic-concurrency conflict)
        """
        stmt = (
            update(Lesson)
            .where(
                Lesson.id == lesson_id,
                Lesson.status == expected_status,
                Lesson.confirmation_status == expected_confirmation,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.db.execute(stmt)
        except SQLAlchemyError as e:
            self.logger.error(f"Error updating lesson {lesson_id}: {str(e)}")
            raise RepositoryException(f"Failed to update lesson: {str(e)}")

        updated = (result.rowcount or 0) == 1
        if updated:
            # Keep any identity-mapped instance in sync with the written row
            self.db.get(Lesson, lesson_id, populate_existing=True)
        return updated

    def list_pending_for_teacher(self, teacher_id: str) -> List[Lesson]:
        """Booked lessons still waiting for the teacher's acknowledgment."""
        return self.list_lessons(
            LessonFilter(
                teacher_id=teacher_id,
                statuses=(LessonStatus.BOOKED.value,),
                confirmation_statuses=(ConfirmationStatus.PENDING.value,),
            )
        )

    def list_recording_candidates(self, started_before: datetime) -> List[Lesson]:
        """Lessons still holding a recording reference that started before the cutoff."""
        query = (
            self._build_query()
            .filter(Lesson.recording_ref.isnot(None))
            .filter(Lesson.scheduled_start < started_before)
            .order_by(Lesson.scheduled_start.asc(), Lesson.id.asc())
        )
        return self._execute_query(query)

    def clear_recording_refs(self, lesson_ids: Iterable[str]) -> int:
        """Drop recording references; insight references are left untouched."""
        ids = list(lesson_ids)
        if not ids:
            return 0
        stmt = (
            update(Lesson)
            .where(Lesson.id.in_(ids))
            .values(recording_ref=None)
            .execution_options(synchronize_session="fetch")
        )
        try:
            result = self.db.execute(stmt)
        except SQLAlchemyError as e:
            self.logger.error(f"Error clearing recordings: {str(e)}")
            raise RepositoryException(f"Failed to clear recordings: {str(e)}")
        return int(result.rowcount or 0)
