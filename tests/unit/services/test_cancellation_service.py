"""Unit tests for CancellationService (policy outcome wrapping)."""

from datetime import timedelta
from unittest.mock import Mock

import pytest

from lessonflow.core.exceptions import (
    InvalidTransition,
    NotFoundException,
    ValidationException,
    WindowClosed,
)
from lessonflow.models.lesson import Lesson
from lessonflow.repositories.credit_repository import CreditRepository
from lessonflow.services.cancellation_service import CancellationService
from lessonflow.services.lesson_state_machine import LessonStateMachine
from tests.factories.lesson_builders import LEARNER_ID, NOW, TEACHER_ID


class TestRequestCancellation:
    @pytest.fixture
    def service(self, unit_db):
        return CancellationService(unit_db)

    def test_successful_cancellation(self, service, make_lesson, unit_db):
        lesson = make_lesson(scheduled_start=NOW + timedelta(hours=5))

        outcome = service.request_cancellation(lesson.id, "  Sick  ", actor_id=LEARNER_ID, now=NOW)

        assert outcome.cancelled is True
        assert outcome.to_dict() == {
            "lesson_id": lesson.id,
            "credits_refunded": 1,
            "status": "cancelled",
        }
        assert unit_db.get(Lesson, lesson.id).cancellation_reason == "Sick"
        assert CreditRepository(unit_db).get_balance(LEARNER_ID) == 1
        assert (outcome.learner_id, outcome.teacher_id) == (LEARNER_ID, TEACHER_ID)

    def test_exactly_two_hours_is_still_allowed(self, service, make_lesson):
        lesson = make_lesson(scheduled_start=NOW + timedelta(hours=2))

        outcome = service.request_cancellation(lesson.id, "Boundary", now=NOW)

        assert outcome.cancelled is True

    def test_too_late_returns_structured_outcome(self, service, make_lesson, unit_db):
        lesson = make_lesson(scheduled_start=NOW + timedelta(hours=1))

        outcome = service.request_cancellation(lesson.id, "Late", now=NOW)

        assert outcome.cancelled is False
        assert outcome.to_dict() == {
            "lesson_id": lesson.id,
            "code": "TOO_LATE",
            "hours_until": 1.0,
            "can_reschedule": True,
        }
        assert unit_db.get(Lesson, lesson.id).status == "booked"

    def test_too_late_without_reschedule(self, service, make_lesson):
        lesson = make_lesson(scheduled_start=NOW + timedelta(minutes=20))

        outcome = service.request_cancellation(lesson.id, "Very late", now=NOW)

        assert outcome.cancelled is False
        assert outcome.can_reschedule is False

    def test_cancelling_twice_is_an_invalid_transition(self, service, make_lesson):
        lesson = make_lesson(scheduled_start=NOW + timedelta(hours=5))
        service.request_cancellation(lesson.id, "First", now=NOW)

        with pytest.raises(InvalidTransition):
            service.request_cancellation(lesson.id, "Second", now=NOW)

    @pytest.mark.parametrize("reason,code", [("   ", "REASON_REQUIRED"), ("x" * 1001, "REASON_TOO_LONG")])
    def test_reason_is_validated(self, service, reason, code):
        with pytest.raises(ValidationException) as exc_info:
            service.request_cancellation("01HZX3AAAAAAAAAAAAAAAAAAZZ", reason, now=NOW)
        assert exc_info.value.code == code

    def test_unknown_lesson(self, service):
        with pytest.raises(NotFoundException):
            service.request_cancellation("01HZX3AAAAAAAAAAAAAAAAAAZZ", "Why", now=NOW)


class TestEvaluate:
    def test_preview_does_not_change_anything(self, unit_db, make_lesson):
        state_machine = Mock(spec=LessonStateMachine)
        service = CancellationService(unit_db, state_machine=state_machine)
        lesson = make_lesson(scheduled_start=NOW + timedelta(minutes=90))

        decision = service.evaluate(lesson.id, now=NOW)

        assert decision.allowed is False
        assert decision.can_reschedule is True
        state_machine.cancel.assert_not_called()

    def test_window_closed_from_state_machine_is_not_reraised(self, unit_db):
        state_machine = Mock(spec=LessonStateMachine)
        state_machine.cancel.side_effect = WindowClosed(
            action="cancel", hours_until=0.4, can_reschedule=False
        )
        service = CancellationService(unit_db, state_machine=state_machine)

        outcome = service.request_cancellation("01HZX3AAAAAAAAAAAAAAAAAAZZ", "Late", now=NOW)

        assert outcome.code == "TOO_LATE"
        assert outcome.hours_until == 0.4
