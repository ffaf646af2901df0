# lessonflow/tasks/beat_schedule.py
"""
Celery Beat schedule configuration.

The recording sweep runs on a fixed interval; it is idempotent so overlapping
or skipped runs are harmless.
"""

from datetime import timedelta
from typing import Any, Optional

from lessonflow.core.config import settings


def get_beat_schedule(interval_minutes: Optional[int] = None) -> dict[str, dict[str, Any]]:
    """
    Build the beat schedule.

    Args:
        interval_minutes: Sweep cadence; defaults to settings.recording_sweep_interval_minutes

    Returns:
        Mapping of schedule entry name to Celery beat configuration dict
    """
    minutes = interval_minutes or settings.recording_sweep_interval_minutes
    return {
        "purge-expired-recordings": {
            "task": "retention.purge_expired_recordings",
            "schedule": timedelta(minutes=minutes),
            "args": (),
            "kwargs": {},
            "options": {"queue": "maintenance", "priority": 2},
        },
    }
