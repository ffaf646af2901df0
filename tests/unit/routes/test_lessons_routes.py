"""
Route tests for /api/v1/lessons.

Mutations run against the in-memory SQLite session (the routes use the real
server clock, so lessons are scheduled relative to utc_now). Read views use
the in-memory store with a pinned clock.
"""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

from fastapi.testclient import TestClient
import pytest

from lessonflow.core.time_utils import utc_now
from lessonflow.database import get_db
from lessonflow.main import create_app
from lessonflow.models.lesson import ConfirmationStatus, LessonStatus
from lessonflow.realtime.change_feed import LessonChangeFeed, ViewerRelevance
from lessonflow.routes.dependencies import get_aggregator, get_change_feed
from lessonflow.schemas.realtime import LessonChangeEvent
from lessonflow.services.availability_aggregator import AvailabilityAggregator
from tests.factories.lesson_builders import (
    LEARNER_ID,
    NOW,
    OTHER_TEACHER_ID,
    SIBLING_ID,
    TEACHER_ID,
    build_lesson,
)

BASE = "/api/v1/lessons"


@pytest.fixture
def client(unit_db, fake_store):
    app = create_app()

    def _db_override():
        yield unit_db

    async def _feed_override():
        return LessonChangeFeed(None)

    app.dependency_overrides[get_db] = _db_override
    app.dependency_overrides[get_change_feed] = _feed_override
    app.dependency_overrides[get_aggregator] = lambda: AvailabilityAggregator(
        fake_store, default_timezone="UTC", clock=lambda: NOW
    )
    return TestClient(app)


def _as(user_id):
    return {"X-User-Id": user_id}


class TestCancelRoute:
    def test_cancel_refunds_one_credit(self, client, make_lesson):
        lesson = make_lesson(scheduled_start=utc_now() + timedelta(hours=5))

        response = client.post(
            f"{BASE}/cancel",
            json={"lesson_id": lesson.id, "reason": "  Feeling unwell  "},
            headers=_as(LEARNER_ID),
        )

        assert response.status_code == 200
        assert response.json() == {
            "lesson_id": lesson.id,
            "credits_refunded": 1,
            "status": "cancelled",
        }

    def test_too_late_returns_structured_detail(self, client, make_lesson):
        lesson = make_lesson(scheduled_start=utc_now() + timedelta(hours=1))

        response = client.post(
            f"{BASE}/cancel",
            json={"lesson_id": lesson.id, "reason": "Traffic"},
            headers=_as(LEARNER_ID),
        )

        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["code"] == "TOO_LATE"
        assert detail["can_reschedule"] is True
        assert detail["hours_until"] == pytest.approx(1.0, abs=0.02)
        assert "reschedule" in detail["message"]

    def test_missing_actor_header_is_unauthorized(self, client, make_lesson):
        lesson = make_lesson(scheduled_start=utc_now() + timedelta(hours=5))

        response = client.post(f"{BASE}/cancel", json={"lesson_id": lesson.id, "reason": "x"})

        assert response.status_code == 401

    def test_stranger_cannot_cancel(self, client, make_lesson):
        lesson = make_lesson(scheduled_start=utc_now() + timedelta(hours=5))

        response = client.post(
            f"{BASE}/cancel",
            json={"lesson_id": lesson.id, "reason": "x"},
            headers=_as(OTHER_TEACHER_ID),
        )

        assert response.status_code == 403
        assert response.json()["detail"]["code"] == "NOT_LESSON_PARTY"

    def test_cancel_unknown_lesson_is_not_found(self, client):
        response = client.post(
            f"{BASE}/cancel",
            json={"lesson_id": "01HZX3AAAAAAAAAAAAAAAAAAZZ", "reason": "x"},
            headers=_as(LEARNER_ID),
        )

        assert response.status_code == 404

    def test_blank_reason_fails_request_validation(self, client, make_lesson):
        lesson = make_lesson(scheduled_start=utc_now() + timedelta(hours=5))

        response = client.post(
            f"{BASE}/cancel",
            json={"lesson_id": lesson.id, "reason": ""},
            headers=_as(LEARNER_ID),
        )

        assert response.status_code == 422
        assert isinstance(response.json()["detail"], list)


class TestAcknowledgeRoutes:
    def test_teacher_acknowledges_pending_lesson(self, client, make_lesson):
        lesson = make_lesson(scheduled_start=utc_now() + timedelta(days=1))

        response = client.post(f"{BASE}/{lesson.id}/acknowledge", headers=_as(TEACHER_ID))

        assert response.status_code == 200
        body = response.json()
        assert body["confirmation_status"] == "acknowledged"
        assert body["previous_confirmation"] == "pending"
        assert body["welcome_notice_enqueued"] is True

    def test_second_acknowledge_is_an_invalid_transition(self, client, make_lesson):
        lesson = make_lesson(
            scheduled_start=utc_now() + timedelta(days=1),
            confirmation_status=ConfirmationStatus.ACKNOWLEDGED.value,
        )

        response = client.post(f"{BASE}/{lesson.id}/acknowledge", headers=_as(TEACHER_ID))

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "INVALID_TRANSITION"

    def test_other_teacher_is_forbidden(self, client, make_lesson):
        lesson = make_lesson(scheduled_start=utc_now() + timedelta(days=1))

        response = client.post(f"{BASE}/{lesson.id}/acknowledge", headers=_as(OTHER_TEACHER_ID))

        assert response.status_code == 403
        assert response.json()["detail"]["code"] == "NOT_LESSON_TEACHER"

    def test_dismiss_auto_acknowledges_without_welcome(self, client, make_lesson):
        lesson = make_lesson(scheduled_start=utc_now() + timedelta(days=1))

        response = client.post(f"{BASE}/{lesson.id}/dismiss", headers=_as(TEACHER_ID))

        assert response.status_code == 200
        body = response.json()
        assert body["confirmation_status"] == "auto_acknowledged"
        assert body["welcome_notice_enqueued"] is False

    def test_malformed_lesson_id_is_rejected(self, client):
        response = client.post(f"{BASE}/not-a-ulid/acknowledge", headers=_as(TEACHER_ID))

        assert response.status_code == 422


class TestViewRoutes:
    def test_overview_for_guardian(self, client, fake_store):
        first = build_lesson(learner_id=LEARNER_ID, scheduled_start=NOW + timedelta(hours=1))
        second = build_lesson(learner_id=SIBLING_ID, scheduled_start=NOW + timedelta(hours=2))
        fake_store.lessons = [first, second]

        response = client.get(
            f"{BASE}/overview",
            params=[("learner_id", LEARNER_ID), ("learner_id", SIBLING_ID), ("tz", "Europe/Berlin")],
            headers=_as(LEARNER_ID),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["timezone"] == "Europe/Berlin"
        assert [row["lesson_id"] for row in body["upcoming_lessons"]] == [first.id, second.id]
        assert body["failures"] == []

    def test_overview_reports_partial_failure(self, client, fake_store):
        fake_store.fail_sessions = ConnectionError("sessions down")

        response = client.get(
            f"{BASE}/overview", params={"learner_id": LEARNER_ID}, headers=_as(LEARNER_ID)
        )

        assert response.status_code == 200
        failures = response.json()["failures"]
        assert [failure["source"] for failure in failures] == ["course_sessions"]

    def test_unknown_timezone_is_bad_request(self, client):
        response = client.get(
            f"{BASE}/overview",
            params={"learner_id": LEARNER_ID, "tz": "Mars/Olympus"},
            headers=_as(LEARNER_ID),
        )

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "INVALID_TIMEZONE"

    def test_history_lists_finished_lessons(self, client, fake_store):
        done = build_lesson(
            scheduled_start=NOW - timedelta(days=1),
            status=LessonStatus.COMPLETED.value,
            confirmation_status=ConfirmationStatus.COMPLETED.value,
        )
        fake_store.lessons = [done]

        response = client.get(
            f"{BASE}/history", params={"learner_id": LEARNER_ID}, headers=_as(LEARNER_ID)
        )

        assert response.status_code == 200
        assert [item["lesson_id"] for item in response.json()["items"]] == [done.id]

    def test_teacher_overview_requires_matching_actor(self, client):
        response = client.get(f"{BASE}/teacher/{TEACHER_ID}/overview", headers=_as(OTHER_TEACHER_ID))

        assert response.status_code == 403

    def test_teacher_pending_list(self, client, fake_store):
        pending = build_lesson(
            scheduled_start=NOW + timedelta(hours=10), created_at=NOW - timedelta(hours=25)
        )
        fake_store.lessons = [
            pending,
            build_lesson(confirmation_status=ConfirmationStatus.ACKNOWLEDGED.value),
        ]

        response = client.get(f"{BASE}/teacher/{TEACHER_ID}/pending", headers=_as(TEACHER_ID))

        assert response.status_code == 200
        body = response.json()
        assert body["teacher_id"] == TEACHER_ID
        assert [item["lesson_id"] for item in body["items"]] == [pending.id]
        assert body["items"][0]["is_urgent"] is True


class TestOperationalRoutes:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200

    def test_prometheus_endpoint_exposes_engine_metrics(self, client):
        response = client.get("/api/v1/metrics/prometheus")

        assert response.status_code == 200
        assert "lessonflow_service_operations_total" in response.text


class TestChangeAnnouncements:
    @pytest.fixture
    def redis(self, client):
        redis = MagicMock()
        redis.publish = AsyncMock(return_value=1)

        async def _feed_override():
            return LessonChangeFeed(redis, channel="test_changes")

        client.app.dependency_overrides[get_change_feed] = _feed_override
        return redis

    @staticmethod
    def _published(redis):
        channel, body = redis.publish.await_args.args
        assert channel == "test_changes"
        return LessonChangeEvent.model_validate_json(body)

    def test_cancel_announces_lesson_parties(self, client, redis, make_lesson):
        lesson = make_lesson(scheduled_start=utc_now() + timedelta(hours=5))

        response = client.post(
            f"{BASE}/cancel",
            json={"lesson_id": lesson.id, "reason": "Moving house"},
            headers=_as(LEARNER_ID),
        )

        assert response.status_code == 200
        event = self._published(redis)
        assert event.row_id == lesson.id
        assert event.learner_id == LEARNER_ID
        assert event.teacher_id == TEACHER_ID
        assert ViewerRelevance(learner_ids=frozenset({SIBLING_ID}))(event) is False
        assert ViewerRelevance(learner_ids=frozenset({LEARNER_ID}))(event) is True

    def test_acknowledge_announces_lesson_parties(self, client, redis, make_lesson):
        lesson = make_lesson(scheduled_start=utc_now() + timedelta(days=1))

        response = client.post(f"{BASE}/{lesson.id}/acknowledge", headers=_as(TEACHER_ID))

        assert response.status_code == 200
        event = self._published(redis)
        assert (event.learner_id, event.teacher_id) == (LEARNER_ID, TEACHER_ID)
        assert ViewerRelevance(teacher_id=OTHER_TEACHER_ID)(event) is False

    def test_too_late_cancel_announces_nothing(self, client, redis, make_lesson):
        lesson = make_lesson(scheduled_start=utc_now() + timedelta(hours=1))

        response = client.post(
            f"{BASE}/cancel",
            json={"lesson_id": lesson.id, "reason": "Traffic"},
            headers=_as(LEARNER_ID),
        )

        assert response.status_code == 422
        redis.publish.assert_not_awaited()
