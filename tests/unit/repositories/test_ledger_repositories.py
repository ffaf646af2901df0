"""Unit tests for the credit, cancellation and outbox repositories."""

from sqlalchemy import insert

from lessonflow.models.cancellation import CreditAccount
from lessonflow.repositories.cancellation_repository import CancellationRepository
from lessonflow.repositories.credit_repository import CreditRepository
from lessonflow.repositories.event_outbox_repository import EventOutboxRepository
from tests.factories.lesson_builders import LEARNER_ID


class TestCreditRepository:
    def test_credit_creates_account_then_increments(self, unit_db):
        repo = CreditRepository(unit_db)

        repo.credit(learner_id=LEARNER_ID, units=1, reason="lesson_cancellation", lesson_id="L-1")
        repo.credit(learner_id=LEARNER_ID, units=1, reason="lesson_cancellation", lesson_id="L-2")

        assert repo.get_balance(LEARNER_ID) == 2
        ledger = repo.list_transactions(LEARNER_ID)
        assert sorted(entry.lesson_id for entry in ledger) == ["L-1", "L-2"]
        assert all(entry.units == 1 for entry in ledger)

    def test_unknown_learner_has_zero_balance(self, unit_db):
        assert CreditRepository(unit_db).get_balance("nobody") == 0

    def test_credit_onto_account_created_by_another_writer(self, unit_db):
        # Row exists in the table but not in this session's identity map
        unit_db.execute(
            insert(CreditAccount).values(learner_id=LEARNER_ID, balance_units=3)
        )
        repo = CreditRepository(unit_db)

        repo.credit(learner_id=LEARNER_ID, units=1, reason="lesson_cancellation")

        assert repo.get_balance(LEARNER_ID) == 4
        assert unit_db.query(CreditAccount).count() == 1


class TestCancellationRepository:
    def test_record_and_lookup(self, unit_db, make_lesson):
        lesson = make_lesson()
        repo = CancellationRepository(unit_db)

        repo.record(
            lesson_id=lesson.id,
            cancelled_by_id=LEARNER_ID,
            reason="Sick",
            credits_refunded=1,
            hours_before_start=3.0,
        )

        record = repo.get_by_lesson_id(lesson.id)
        assert record.reason == "Sick"
        assert record.hours_before_start == 3.0
        assert repo.get_by_lesson_id("missing") is None


class TestEventOutboxRepository:
    def test_enqueue_is_idempotent_on_key(self, unit_db):
        repo = EventOutboxRepository(unit_db)

        first, created_first = repo.enqueue(
            "event:LearnerWelcomeRequested", "L-1", {"a": 1}, idempotency_key="lesson_welcome:L-1"
        )
        second, created_second = repo.enqueue(
            "event:LearnerWelcomeRequested", "L-1", {"a": 2}, idempotency_key="lesson_welcome:L-1"
        )

        assert created_first is True
        assert created_second is False
        assert second.id == first.id
        assert second.payload == {"a": 1}

    def test_default_key_is_type_and_aggregate(self, unit_db):
        row, _ = EventOutboxRepository(unit_db).enqueue("event:LessonCompleted", "L-9")

        assert row.idempotency_key == "event:LessonCompleted:L-9"
        assert row.status == "PENDING"
