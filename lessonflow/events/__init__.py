"""Lesson domain events and the outbox publisher."""

from lessonflow.events.lesson_events import (
    LearnerWelcomeRequested,
    LessonAcknowledged,
    LessonCancelled,
    LessonCompleted,
)
from lessonflow.events.publisher import EventPublisher

__all__ = [
    "EventPublisher",
    "LearnerWelcomeRequested",
    "LessonAcknowledged",
    "LessonCancelled",
    "LessonCompleted",
]
