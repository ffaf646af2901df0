# lessonflow/repositories/factory.py
"""
Repository Factory for the lesson engine.

Services never instantiate repositories directly, which keeps them easy to
swap for mocks in unit tests.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session


# Avoid circular imports
if TYPE_CHECKING:
    from .cancellation_repository import CancellationRepository
    from .course_session_repository import CourseSessionRepository
    from .credit_repository import CreditRepository
    from .event_outbox_repository import EventOutboxRepository
    from .lesson_repository import LessonRepository


class RepositoryFactory:
    """Factory class for creating repository instances."""

    @staticmethod
    def create_lesson_repository(db: Session) -> "LessonRepository":
        """Create repository for lesson reads and guarded state writes."""
        from .lesson_repository import LessonRepository

        return LessonRepository(db)

    @staticmethod
    def create_course_session_repository(db: Session) -> "CourseSessionRepository":
        """Create repository for group course sessions."""
        from .course_session_repository import CourseSessionRepository

        return CourseSessionRepository(db)

    @staticmethod
    def create_cancellation_repository(db: Session) -> "CancellationRepository":
        from .cancellation_repository import CancellationRepository

        return CancellationRepository(db)

    @staticmethod
    def create_credit_repository(db: Session) -> "CreditRepository":
        from .credit_repository import CreditRepository

        return CreditRepository(db)

    @staticmethod
    def create_event_outbox_repository(db: Session) -> "EventOutboxRepository":
        """Create repository for the idempotent notification outbox."""
        from .event_outbox_repository import EventOutboxRepository

        return EventOutboxRepository(db)
