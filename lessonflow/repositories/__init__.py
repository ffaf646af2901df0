# lessonflow/repositories/__init__.py
"""
Repository layer for the lesson engine.

Key Components:
- BaseRepository: shared read/create helpers with error wrapping
- RepositoryFactory: creates repository instances for services
- LessonRepository: lesson queries and the conditional status write
- CourseSessionRepository: enrollment-gated course session queries
- CancellationRepository / CreditRepository: refund ledger
- EventOutboxRepository: idempotent notification outbox

Usage:
    from lessonflow.repositories import RepositoryFactory

    repository = RepositoryFactory.create_lesson_repository(db)
    lessons = repository.list_lessons(LessonFilter(learner_ids=(learner_id,)))
"""

from .base_repository import BaseRepository
from .cancellation_repository import CancellationRepository
from .course_session_repository import CourseSessionFilter, CourseSessionRepository
from .credit_repository import CreditRepository
from .event_outbox_repository import EventOutboxRepository
from .factory import RepositoryFactory
from .lesson_repository import ArtifactRefs, LessonFilter, LessonRepository

__all__ = [
    "ArtifactRefs",
    "BaseRepository",
    "CancellationRepository",
    "CourseSessionFilter",
    "CourseSessionRepository",
    "CreditRepository",
    "EventOutboxRepository",
    "LessonFilter",
    "LessonRepository",
    "RepositoryFactory",
]
