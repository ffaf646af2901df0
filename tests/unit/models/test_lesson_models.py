from datetime import datetime, time, timedelta, timezone

from lessonflow.models.course_session import LiveStatus
from lessonflow.models.lesson import ConfirmationStatus, Lesson, LessonStatus
from tests.factories.lesson_builders import NOW, build_course_session, build_lesson


def test_new_lesson_starts_booked_and_pending():
    lesson = Lesson(
        learner_id="L", teacher_id="T", subject_id="S", scheduled_start=NOW, duration_minutes=45
    )

    assert lesson.status == LessonStatus.BOOKED.value
    assert lesson.confirmation_status == ConfirmationStatus.PENDING.value
    assert lesson.is_terminal is False


def test_naive_start_read_back_from_sqlite_is_utc():
    lesson = build_lesson(scheduled_start=datetime(2026, 3, 10, 9, 0), duration_minutes=90)

    assert lesson.starts_at == datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)
    assert lesson.scheduled_end == datetime(2026, 3, 10, 10, 30, tzinfo=timezone.utc)


def test_terminal_statuses():
    assert build_lesson(status=LessonStatus.CANCELLED.value).is_terminal is True
    assert build_lesson(status=LessonStatus.COMPLETED.value).is_terminal is True


def test_lesson_round_trips_through_database(make_lesson, unit_db):
    lesson = make_lesson(room_reference="room-1")
    unit_db.expire_all()

    stored = unit_db.get(Lesson, lesson.id)

    assert stored.room_reference == "room-1"
    assert stored.starts_at == lesson.starts_at


def test_course_session_start_combines_date_and_time():
    session = build_course_session(start=NOW + timedelta(days=2))

    assert session.schedule_time == time(12, 0)
    assert session.starts_at == NOW + timedelta(days=2)
    assert session.scheduled_end == NOW + timedelta(days=2, hours=1)


def test_room_code_only_exposed_while_live():
    session = build_course_session(room_code="ROOM")

    assert session.exposed_room_code is None
    session.live_status = LiveStatus.LIVE.value
    assert session.exposed_room_code == "ROOM"
    session.live_status = LiveStatus.ENDED.value
    assert session.exposed_room_code is None
