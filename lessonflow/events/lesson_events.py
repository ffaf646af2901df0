"""Lesson domain events."""
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass
class LessonAcknowledged:
    """Fired after a teacher acknowledges (or dismisses) a pending lesson."""

    lesson_id: str
    teacher_id: str
    learner_id: str
    confirmation_status: str  # 'acknowledged' or 'auto_acknowledged'
    acknowledged_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def idempotency_key(self) -> str:
        return f"lesson_acknowledged:{self.lesson_id}"


@dataclass
class LearnerWelcomeRequested:
    """One-time welcome notice for the first engaged lesson of a teacher/learner pair."""

    lesson_id: str
    teacher_id: str
    learner_id: str
    requested_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def idempotency_key(self) -> str:
        return f"lesson_welcome:{self.lesson_id}"


@dataclass
class LessonCancelled:
    """Fired after a lesson is cancelled and refunded."""

    lesson_id: str
    learner_id: str
    teacher_id: str
    cancelled_at: datetime
    reason: str
    credits_refunded: int
    cancelled_by_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def idempotency_key(self) -> str:
        return f"lesson_cancelled:{self.lesson_id}"


@dataclass
class LessonCompleted:
    """Fired after the session collaborator reports the call ended."""

    lesson_id: str
    learner_id: str
    teacher_id: str
    completed_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def idempotency_key(self) -> str:
        return f"lesson_completed:{self.lesson_id}"
