# lessonflow/services/cancellation_service.py
"""
Cancellation & reschedule policy service.

Wraps the state machine's cancel transition so that a refusal for lack of
notice comes back as a structured outcome (hours until start plus whether
rescheduling can be offered) instead of an exception.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ..core.exceptions import NotFoundException, ValidationException, WindowClosed
from ..core.time_utils import utc_now
from ..domain.cancellation_policy import CancellationDecision, evaluate_cancellation
from ..repositories.factory import RepositoryFactory
from ..repositories.lesson_repository import LessonRepository
from .base import BaseService
from .lesson_state_machine import LessonStateMachine

logger = logging.getLogger(__name__)

MAX_REASON_LENGTH = 1000


@dataclass(frozen=True)
class CancellationOutcome:
    """Result of a cancel request; exactly one of the two shapes is populated."""

    lesson_id: str
    cancelled: bool
    credits_refunded: int = 0
    status: Optional[str] = None
    code: Optional[str] = None
    hours_until: Optional[float] = None
    can_reschedule: bool = False
    learner_id: Optional[str] = None
    teacher_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        if self.cancelled:
            return {
                "lesson_id": self.lesson_id,
                "credits_refunded": self.credits_refunded,
                "status": self.status,
            }
        return {
            "lesson_id": self.lesson_id,
            "code": self.code,
            "hours_until": self.hours_until,
            "can_reschedule": self.can_reschedule,
        }


class CancellationService(BaseService):
    """Applies the cancellation policy at execution time."""

    def __init__(
        self,
        db: Session,
        state_machine: Optional[LessonStateMachine] = None,
        lesson_repository: Optional[LessonRepository] = None,
    ):
        super().__init__(db)
        self.state_machine = state_machine or LessonStateMachine(db)
        self.lesson_repository = lesson_repository or RepositoryFactory.create_lesson_repository(db)

    @BaseService.measure_operation("evaluate_cancellation")
    def evaluate(self, lesson_id: str, *, now: Optional[datetime] = None) -> CancellationDecision:
        """Preview the policy decision for a lesson without changing anything."""
        lesson = self.lesson_repository.get_by_id(lesson_id)
        if lesson is None:
            raise NotFoundException(f"Lesson {lesson_id} not found", code="LESSON_NOT_FOUND")
        return evaluate_cancellation(now or utc_now(), lesson.starts_at)

    @BaseService.measure_operation("request_cancellation")
    def request_cancellation(
        self,
        lesson_id: str,
        reason: str,
        *,
        actor_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> CancellationOutcome:
        """
        Cancel a lesson if the notice period allows it.

        Eligibility is always recomputed here from the server clock; a flag
        the client computed earlier is never trusted.

        Returns:
            CancellationOutcome with ``cancelled=True`` and the refunded units,
            or ``cancelled=False`` with code TOO_LATE, hours until start and
            whether a reschedule can be offered instead

        Raises:
            InvalidTransition: lesson is already completed or cancelled
            NotFoundException: unknown lesson
        """
        reason = (reason or "").strip()
        if not reason:
            raise ValidationException("A cancellation reason is required", code="REASON_REQUIRED")
        if len(reason) > MAX_REASON_LENGTH:
            raise ValidationException(
                f"Cancellation reason must be at most {MAX_REASON_LENGTH} characters",
                code="REASON_TOO_LONG",
            )

        try:
            result = self.state_machine.cancel(
                lesson_id, reason=reason, actor_id=actor_id, now=now or utc_now()
            )
        except WindowClosed as exc:
            self.logger.info(
                "Cancellation refused: too close to start",
                extra={"lesson_id": lesson_id, "hours_until": exc.hours_until},
            )
            return CancellationOutcome(
                lesson_id=lesson_id,
                cancelled=False,
                code=exc.code,
                hours_until=exc.hours_until,
                can_reschedule=exc.can_reschedule,
            )

        self.log_operation(
            "lesson_cancelled",
            lesson_id=lesson_id,
            credits_refunded=result.credits_refunded,
        )
        return CancellationOutcome(
            lesson_id=lesson_id,
            cancelled=True,
            credits_refunded=result.credits_refunded,
            status=result.status,
            learner_id=result.learner_id,
            teacher_id=result.teacher_id,
        )
