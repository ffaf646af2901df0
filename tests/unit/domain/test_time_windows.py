"""Unit tests for the time-window calculator."""

from datetime import datetime, timedelta, timezone

import pytest

from lessonflow.domain.time_windows import (
    can_cancel,
    can_join,
    can_reschedule,
    compute_course_window,
    compute_window,
    is_today,
    lesson_is_past,
    minutes_until_start,
    recording_days_left,
)
from tests.factories.lesson_builders import NOW


class TestLessonScenarios:
    def test_three_hours_out_can_cancel_and_reschedule_but_not_join_yet(self):
        window = compute_window(NOW, NOW + timedelta(hours=3), 60, lead_minutes=60)

        assert window.can_join is False
        assert window.can_cancel is True
        assert window.can_reschedule is True

    def test_three_hours_out_is_joinable_with_default_six_hour_lead(self):
        window = compute_window(NOW, NOW + timedelta(hours=3), 60)

        assert window.can_join is True

    def test_mid_session_lesson_is_joinable_and_not_past(self):
        window = compute_window(NOW, NOW - timedelta(minutes=10), 60)

        assert window.can_join is True
        assert window.lesson_is_past is False
        assert window.minutes_until_start == pytest.approx(-10.0)
        assert window.can_cancel is False
        assert window.can_reschedule is False

    def test_one_hour_out_cannot_cancel_but_can_reschedule(self):
        window = compute_window(NOW, NOW + timedelta(hours=1), 60)

        assert window.can_cancel is False
        assert window.can_reschedule is True
        assert window.hours_until_start == pytest.approx(1.0)

    def test_finished_lesson_is_past(self):
        window = compute_window(NOW, NOW - timedelta(minutes=61), 60)

        assert window.lesson_is_past is True
        assert window.can_join is False
        assert window.recording_days_left == 7

    def test_non_positive_duration_is_rejected(self):
        with pytest.raises(ValueError):
            compute_window(NOW, NOW, 0)


class TestBoundaries:
    def test_cancel_boundary_at_exactly_two_hours_is_inclusive(self):
        assert can_cancel(NOW, NOW + timedelta(hours=2)) is True
        assert can_cancel(NOW, NOW + timedelta(hours=2) - timedelta(seconds=1)) is False

    def test_reschedule_boundary_at_thirty_minutes_is_exclusive(self):
        assert can_reschedule(NOW, NOW + timedelta(minutes=30)) is False
        assert can_reschedule(NOW, NOW + timedelta(minutes=30, seconds=1)) is True

    def test_join_opens_exactly_at_lead_and_closes_exactly_at_end(self):
        start = NOW + timedelta(minutes=360)
        assert can_join(NOW, start, 60) is True
        assert can_join(NOW, start + timedelta(seconds=1), 60) is False

        started = NOW - timedelta(minutes=60)
        assert can_join(NOW, started, 60) is True
        assert can_join(NOW, started - timedelta(seconds=1), 60) is False

    def test_course_sessions_open_ten_minutes_early(self):
        assert compute_course_window(NOW, NOW + timedelta(minutes=10), 60).can_join is True
        assert compute_course_window(NOW, NOW + timedelta(minutes=11), 60).can_join is False

    def test_lesson_is_past_is_strict(self):
        assert lesson_is_past(NOW, NOW) is False
        assert lesson_is_past(NOW + timedelta(seconds=1), NOW) is True

    @pytest.mark.parametrize("offset_minutes", [-600, -61, -60, -1, 0, 1, 120, 359, 360, 361])
    def test_can_join_implies_inside_window(self, offset_minutes):
        start = NOW + timedelta(minutes=offset_minutes)
        if can_join(NOW, start, 60):
            assert NOW >= start - timedelta(minutes=360)
            assert NOW <= start + timedelta(minutes=60)


class TestRecordingDaysLeft:
    def test_full_retention_until_first_day_elapses(self):
        end = NOW - timedelta(hours=23)
        assert recording_days_left(NOW, end) == 7

    def test_decreases_monotonically(self):
        end = NOW
        values = [recording_days_left(NOW + timedelta(hours=h), end) for h in range(0, 24 * 9, 6)]
        assert values == sorted(values, reverse=True)
        assert values[0] == 7
        assert values[-1] < 0

    def test_hits_zero_after_seven_days(self):
        end = NOW - timedelta(days=7)
        assert recording_days_left(NOW, end) == 0

    def test_end_in_the_future_keeps_full_retention(self):
        assert recording_days_left(NOW, NOW + timedelta(hours=5)) == 7


class TestIsToday:
    def test_uses_viewer_timezone(self):
        # 03:00 UTC on the 11th is still the 10th in New York
        now = datetime(2026, 3, 10, 23, 0, tzinfo=timezone.utc)
        start = datetime(2026, 3, 11, 3, 0, tzinfo=timezone.utc)

        assert is_today(now, start, "America/New_York") is True
        assert is_today(now, start, "UTC") is False

    def test_defaults_to_utc(self):
        assert is_today(NOW, NOW + timedelta(hours=11)) is True
        assert is_today(NOW, NOW + timedelta(hours=12)) is False

    def test_naive_datetimes_are_treated_as_utc(self):
        naive_start = (NOW + timedelta(minutes=90)).replace(tzinfo=None)
        assert minutes_until_start(NOW, naive_start) == pytest.approx(90.0)
