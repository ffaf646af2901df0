# lessonflow/services/lesson_state_machine.py
"""
Lesson State Machine.

The only writer of ``Lesson.status`` and ``Lesson.confirmation_status``.

Legal transitions:
    acknowledge  booked.pending -> booked.acknowledged (+ first-lesson welcome notice)
    dismiss      booked.pending -> booked.auto_acknowledged
    complete     booked.*       -> completed.completed (external trigger only)
    cancel       booked.*       -> cancelled.* (only inside the cancellation window)

Every write is a single conditional UPDATE guarded by the state that was read.
If another writer got there first the transition is re-evaluated once
against fresh state; a second lost race surfaces as ConcurrencyConflict.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import logging
from typing import Any, Callable, Dict, FrozenSet, Optional, Tuple

from sqlalchemy.orm import Session

from ..core.exceptions import (
    ConcurrencyConflict,
    ForbiddenException,
    InvalidTransition,
    NotFoundException,
    WindowClosed,
)
from ..core.time_utils import utc_now
from ..domain.cancellation_policy import evaluate_cancellation
from ..events import (
    EventPublisher,
    LearnerWelcomeRequested,
    LessonAcknowledged,
    LessonCancelled,
    LessonCompleted,
)
from ..models.lesson import ConfirmationStatus, Lesson, LessonStatus
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.cancellation_repository import CancellationRepository
from ..repositories.credit_repository import CreditRepository
from ..repositories.event_outbox_repository import EventOutboxRepository
from ..repositories.factory import RepositoryFactory
from ..repositories.lesson_repository import LessonRepository
from .base import BaseService

logger = logging.getLogger(__name__)

ACKNOWLEDGE = "acknowledge"
DISMISS = "dismiss"
COMPLETE = "complete"
CANCEL = "cancel"

_BOOKED = LessonStatus.BOOKED.value
_ANY_CONFIRMATION: FrozenSet[str] = frozenset(c.value for c in ConfirmationStatus)

# action -> (allowed (status, confirmation) pairs, target status, target confirmation or None to keep)
TRANSITIONS: Dict[str, Tuple[FrozenSet[Tuple[str, str]], str, Optional[str]]] = {
    ACKNOWLEDGE: (
        frozenset({(_BOOKED, ConfirmationStatus.PENDING.value)}),
        _BOOKED,
        ConfirmationStatus.ACKNOWLEDGED.value,
    ),
    DISMISS: (
        frozenset({(_BOOKED, ConfirmationStatus.PENDING.value)}),
        _BOOKED,
        ConfirmationStatus.AUTO_ACKNOWLEDGED.value,
    ),
    COMPLETE: (
        frozenset((_BOOKED, c) for c in _ANY_CONFIRMATION - {ConfirmationStatus.COMPLETED.value}),
        LessonStatus.COMPLETED.value,
        ConfirmationStatus.COMPLETED.value,
    ),
    CANCEL: (
        frozenset((_BOOKED, c) for c in _ANY_CONFIRMATION),
        LessonStatus.CANCELLED.value,
        None,
    ),
}


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of a successful transition."""

    lesson_id: str
    action: str
    previous_status: str
    previous_confirmation: str
    status: str
    confirmation_status: str
    welcome_notice_enqueued: bool = False
    credits_refunded: int = 0
    hours_until_start: Optional[float] = None
    learner_id: Optional[str] = None
    teacher_id: Optional[str] = None


def is_legal(action: str, status: str, confirmation_status: str) -> bool:
    allowed, _, _ = TRANSITIONS[action]
    return (status, confirmation_status) in allowed


class LessonStateMachine(BaseService):
    """Validates and applies lesson transitions with their side effects."""

    def __init__(
        self,
        db: Session,
        lesson_repository: Optional[LessonRepository] = None,
        cancellation_repository: Optional[CancellationRepository] = None,
        credit_repository: Optional[CreditRepository] = None,
        outbox_repository: Optional[EventOutboxRepository] = None,
    ):
        super().__init__(db)
        self.lesson_repository = (
            lesson_repository or RepositoryFactory.create_lesson_repository(db)
        )
        self.cancellation_repository = (
            cancellation_repository or RepositoryFactory.create_cancellation_repository(db)
        )
        self.credit_repository = credit_repository or RepositoryFactory.create_credit_repository(db)
        self.event_publisher = EventPublisher(
            outbox_repository or RepositoryFactory.create_event_outbox_repository(db)
        )

    # ------------------------------------------------------------------ actions

    @BaseService.measure_operation("acknowledge_lesson")
    def acknowledge(
        self, lesson_id: str, *, actor_id: Optional[str] = None, now: Optional[datetime] = None
    ) -> TransitionResult:
        """
        Teacher acknowledges a pending lesson.

        Enqueues a one-time welcome notice when no earlier lesson of the pair
        is completed or acknowledged. The count runs only after this call has
        won the conditional write, so concurrent acknowledgments of the same
        lesson produce a single notice.
        """
        at = now or utc_now()

        def side_effects(lesson: Lesson) -> Dict[str, Any]:
            self.event_publisher.publish(
                LessonAcknowledged(
                    lesson_id=lesson.id,
                    teacher_id=lesson.teacher_id,
                    learner_id=lesson.learner_id,
                    confirmation_status=ConfirmationStatus.ACKNOWLEDGED.value,
                    acknowledged_at=at,
                )
            )
            prior = self.lesson_repository.count_prior_engaged_lessons(
                teacher_id=lesson.teacher_id,
                learner_id=lesson.learner_id,
                exclude_lesson_id=lesson.id,
            )
            welcomed = False
            if prior == 0:
                welcomed = self.event_publisher.publish(
                    LearnerWelcomeRequested(
                        lesson_id=lesson.id,
                        teacher_id=lesson.teacher_id,
                        learner_id=lesson.learner_id,
                        requested_at=at,
                    )
                )
            return {"welcome_notice_enqueued": welcomed}

        return self._run(
            lesson_id,
            ACKNOWLEDGE,
            actor_check=self._require_teacher(actor_id),
            values={"acknowledged_at": at, "updated_at": at},
            side_effects=side_effects,
        )

    @BaseService.measure_operation("dismiss_lesson")
    def dismiss(
        self, lesson_id: str, *, actor_id: Optional[str] = None, now: Optional[datetime] = None
    ) -> TransitionResult:
        """Teacher dismisses a pending request; no welcome notice is sent."""
        at = now or utc_now()

        def side_effects(lesson: Lesson) -> Dict[str, Any]:
            self.event_publisher.publish(
                LessonAcknowledged(
                    lesson_id=lesson.id,
                    teacher_id=lesson.teacher_id,
                    learner_id=lesson.learner_id,
                    confirmation_status=ConfirmationStatus.AUTO_ACKNOWLEDGED.value,
                    acknowledged_at=at,
                )
            )
            return {}

        return self._run(
            lesson_id,
            DISMISS,
            actor_check=self._require_teacher(actor_id),
            values={"acknowledged_at": at, "updated_at": at},
            side_effects=side_effects,
        )

    @BaseService.measure_operation("complete_lesson")
    def complete(self, lesson_id: str, *, now: Optional[datetime] = None) -> TransitionResult:
        """Mark a lesson completed once the session collaborator reports the call ended."""
        at = now or utc_now()

        def side_effects(lesson: Lesson) -> Dict[str, Any]:
            self.event_publisher.publish(
                LessonCompleted(
                    lesson_id=lesson.id,
                    learner_id=lesson.learner_id,
                    teacher_id=lesson.teacher_id,
                    completed_at=at,
                )
            )
            return {}

        return self._run(
            lesson_id,
            COMPLETE,
            values={"completed_at": at, "updated_at": at},
            side_effects=side_effects,
        )

    @BaseService.measure_operation("cancel_lesson")
    def cancel(
        self,
        lesson_id: str,
        *,
        reason: str,
        actor_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> TransitionResult:
        """
        Cancel a booked lesson, write the cancellation record and refund one credit.

        Raises:
            WindowClosed: less than the minimum notice remains (code TOO_LATE)
            InvalidTransition: the lesson is not booked
        """
        at = now or utc_now()
        decision_holder: Dict[str, Any] = {}

        def guard(lesson: Lesson) -> None:
            # Recomputed from the server clock on every attempt
            decision = evaluate_cancellation(at, lesson.starts_at)
            decision_holder["decision"] = decision
            if not decision.allowed:
                prometheus_metrics.record_transition(CANCEL, "too_late")
                raise WindowClosed(
                    action=CANCEL,
                    hours_until=round(decision.hours_until, 2),
                    can_reschedule=decision.can_reschedule,
                )

        def side_effects(lesson: Lesson) -> Dict[str, Any]:
            decision = decision_holder["decision"]
            units = decision.refund_units
            self.cancellation_repository.record(
                lesson_id=lesson.id,
                cancelled_by_id=actor_id,
                reason=reason,
                credits_refunded=units,
                hours_before_start=round(decision.hours_until, 2),
            )
            self.credit_repository.credit(
                learner_id=lesson.learner_id,
                units=units,
                reason="lesson_cancellation",
                lesson_id=lesson.id,
            )
            self.event_publisher.publish(
                LessonCancelled(
                    lesson_id=lesson.id,
                    learner_id=lesson.learner_id,
                    teacher_id=lesson.teacher_id,
                    cancelled_at=at,
                    reason=reason,
                    credits_refunded=units,
                    cancelled_by_id=actor_id,
                )
            )
            return {
                "credits_refunded": units,
                "hours_until_start": round(decision.hours_until, 2),
            }

        result = self._run(
            lesson_id,
            CANCEL,
            actor_check=self._require_party(actor_id),
            guard=guard,
            values={"cancelled_at": at, "cancellation_reason": reason, "updated_at": at},
            side_effects=side_effects,
        )
        prometheus_metrics.inc_credits_refunded(result.credits_refunded)
        return result

    # ----------------------------------------------------------------- internals

    def _run(
        self,
        lesson_id: str,
        action: str,
        *,
        values: Dict[str, Any],
        side_effects: Callable[[Lesson], Dict[str, Any]],
        actor_check: Optional[Callable[[Lesson], None]] = None,
        guard: Optional[Callable[[Lesson], None]] = None,
    ) -> TransitionResult:
        """Apply ``action`` with one automatic retry after a lost race."""
        try:
            return self._attempt(lesson_id, action, values, side_effects, actor_check, guard)
        except ConcurrencyConflict:
            self.logger.warning(
                "Concurrent write on lesson; re-evaluating %s once",
                action,
                extra={"lesson_id": lesson_id, "action": action},
            )
        try:
            return self._attempt(lesson_id, action, values, side_effects, actor_check, guard)
        except ConcurrencyConflict:
            prometheus_metrics.record_transition(action, "conflict")
            raise

    def _attempt(
        self,
        lesson_id: str,
        action: str,
        values: Dict[str, Any],
        side_effects: Callable[[Lesson], Dict[str, Any]],
        actor_check: Optional[Callable[[Lesson], None]],
        guard: Optional[Callable[[Lesson], None]],
    ) -> TransitionResult:
        _, target_status, target_confirmation = TRANSITIONS[action]

        with self.transaction():
            lesson = self.lesson_repository.get_current(lesson_id)
            if lesson is None:
                raise NotFoundException(f"Lesson {lesson_id} not found", code="LESSON_NOT_FOUND")
            if actor_check is not None:
                actor_check(lesson)

            current_status = lesson.status
            current_confirmation = lesson.confirmation_status
            parties = {"learner_id": lesson.learner_id, "teacher_id": lesson.teacher_id}
            new_confirmation = target_confirmation or current_confirmation

            if not is_legal(action, current_status, current_confirmation):
                prometheus_metrics.record_transition(action, "invalid")
                raise InvalidTransition(
                    action=action,
                    current_status=current_status,
                    current_confirmation=current_confirmation,
                    attempted_status=target_status,
                    attempted_confirmation=new_confirmation,
                )
            if guard is not None:
                guard(lesson)

            written = self.lesson_repository.update_status_if_current(
                lesson_id,
                expected_status=current_status,
                expected_confirmation=current_confirmation,
                status=target_status,
                confirmation_status=new_confirmation,
                **values,
            )
            if not written:
                raise ConcurrencyConflict(
                    lesson_id=lesson_id,
                    expected_status=current_status,
                    expected_confirmation=current_confirmation,
                )

            extra = side_effects(lesson)

        prometheus_metrics.record_transition(action, "applied")
        self.logger.info(
            "Lesson %s: %s/%s -> %s/%s",
            action,
            current_status,
            current_confirmation,
            target_status,
            new_confirmation,
            extra={"lesson_id": lesson_id, "action": action},
        )
        return TransitionResult(
            lesson_id=lesson_id,
            action=action,
            previous_status=current_status,
            previous_confirmation=current_confirmation,
            status=target_status,
            confirmation_status=new_confirmation,
            **parties,
            **extra,
        )

    @staticmethod
    def _require_teacher(actor_id: Optional[str]) -> Callable[[Lesson], None]:
        def check(lesson: Lesson) -> None:
            if actor_id is not None and actor_id != lesson.teacher_id:
                raise ForbiddenException(
                    "Only the lesson's teacher can do this", code="NOT_LESSON_TEACHER"
                )

        return check

    @staticmethod
    def _require_party(actor_id: Optional[str]) -> Callable[[Lesson], None]:
        def check(lesson: Lesson) -> None:
            if actor_id is not None and actor_id not in (lesson.learner_id, lesson.teacher_id):
                raise ForbiddenException(
                    "Only the lesson's learner or teacher can cancel it",
                    code="NOT_LESSON_PARTY",
                )

        return check
