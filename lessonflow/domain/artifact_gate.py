"""Exposure rules for lesson artifacts and room references.

Availability is decided from reference presence plus elapsed time, never
from lesson status. An absent reference is a normal transient state.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from lessonflow.core.constants import RECORDING_PROCESSING_HOURS
from lessonflow.core.time_utils import ensure_utc

from .time_windows import recording_days_left


class RecordingState(str, Enum):
    AVAILABLE = "available"
    PROCESSING = "processing"  # < 24h since end, producer may still deliver
    EXPIRED = "expired"
    MISSING = "missing"  # past the processing window, nothing delivered


@dataclass(frozen=True)
class ArtifactExposure:
    recording_state: RecordingState
    recording_days_left: int
    has_recording: bool
    has_insight: bool
    recording_ref: Optional[str] = None
    insight_ref: Optional[str] = None


def _present(ref: Optional[str]) -> bool:
    return bool(ref and ref.strip())


def evaluate_artifacts(
    now: datetime,
    lesson_end: datetime,
    recording_ref: Optional[str],
    insight_ref: Optional[str],
) -> ArtifactExposure:
    """
    Decide which artifacts of a finished lesson can be shown.

    The recording reference is only handed out while it is available;
    insights do not expire with the recording.
    """
    days_left = recording_days_left(now, lesson_end)
    has_recording = _present(recording_ref) and days_left > 0
    has_insight = _present(insight_ref)

    if days_left <= 0:
        state = RecordingState.EXPIRED
    elif _present(recording_ref):
        state = RecordingState.AVAILABLE
    else:
        hours_since_end = (ensure_utc(now) - ensure_utc(lesson_end)).total_seconds() / 3600
        if hours_since_end < RECORDING_PROCESSING_HOURS:
            state = RecordingState.PROCESSING
        else:
            state = RecordingState.MISSING

    return ArtifactExposure(
        recording_state=state,
        recording_days_left=days_left,
        has_recording=has_recording,
        has_insight=has_insight,
        recording_ref=recording_ref if has_recording else None,
        insight_ref=insight_ref if has_insight else None,
    )


def room_ready(room_reference: Optional[str]) -> bool:
    """A room that has not been provisioned yet simply disables joining."""
    return _present(room_reference)
