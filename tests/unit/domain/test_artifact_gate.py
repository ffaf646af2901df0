"""Unit tests for recording/insight exposure."""

from datetime import timedelta

import pytest

from lessonflow.domain.artifact_gate import RecordingState, evaluate_artifacts, room_ready
from tests.factories.lesson_builders import NOW


class TestEvaluateArtifacts:
    def test_recording_available_within_retention(self):
        exposure = evaluate_artifacts(NOW, NOW - timedelta(days=2), "rec://abc", "ins://abc")

        assert exposure.recording_state is RecordingState.AVAILABLE
        assert exposure.has_recording is True
        assert exposure.recording_ref == "rec://abc"
        assert exposure.has_insight is True
        assert exposure.recording_days_left == 5

    def test_expired_recording_is_hidden_but_insight_survives(self):
        exposure = evaluate_artifacts(NOW, NOW - timedelta(days=8), "rec://abc", "ins://abc")

        assert exposure.recording_state is RecordingState.EXPIRED
        assert exposure.has_recording is False
        assert exposure.recording_ref is None
        assert exposure.has_insight is True
        assert exposure.insight_ref == "ins://abc"

    def test_missing_reference_shortly_after_end_is_processing(self):
        exposure = evaluate_artifacts(NOW, NOW - timedelta(hours=3), None, None)

        assert exposure.recording_state is RecordingState.PROCESSING
        assert exposure.has_recording is False
        assert exposure.has_insight is False

    def test_missing_reference_after_processing_window_is_missing(self):
        exposure = evaluate_artifacts(NOW, NOW - timedelta(hours=30), None, "ins://abc")

        assert exposure.recording_state is RecordingState.MISSING
        assert exposure.has_insight is True

    def test_blank_reference_counts_as_absent(self):
        exposure = evaluate_artifacts(NOW, NOW - timedelta(days=1), "   ", "")

        assert exposure.has_recording is False
        assert exposure.has_insight is False

    def test_has_recording_flips_exactly_when_days_left_crosses_zero(self):
        end = NOW
        for hours in range(0, 24 * 9, 3):
            exposure = evaluate_artifacts(end + timedelta(hours=hours), end, "rec://x", None)
            assert exposure.has_recording is (exposure.recording_days_left > 0)


class TestRoomReady:
    @pytest.mark.parametrize("ref,expected", [("room-1", True), (None, False), ("", False)])
    def test_room_ready(self, ref, expected):
        assert room_ready(ref) is expected
