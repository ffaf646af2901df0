"""
Database models for the lesson engine.

- Lesson: 1:1 lessons with booking status and confirmation axes
- CourseSession / CourseEnrollment: group course occurrences and enrollment
- CancellationRecord / CreditAccount / CreditTransaction: refund ledger
- EventOutbox: idempotent notification queue
"""

from .cancellation import CancellationRecord, CreditAccount, CreditTransaction
from .course_session import CourseEnrollment, CourseSession, LiveStatus
from .event_outbox import EventOutbox, EventOutboxStatus
from .lesson import ConfirmationStatus, Lesson, LessonStatus

__all__ = [
    "CancellationRecord",
    "ConfirmationStatus",
    "CourseEnrollment",
    "CourseSession",
    "CreditAccount",
    "CreditTransaction",
    "EventOutbox",
    "EventOutboxStatus",
    "Lesson",
    "LessonStatus",
    "LiveStatus",
]
