# lessonflow/services/recording_retention_service.py
"""
RecordingRetentionService: periodic sweep of expired lesson recordings.

Recordings stay reachable for RECORDING_RETENTION_DAYS after the lesson's
scheduled end. Past that point the view already hides them; this sweep drops
the stored reference so the external media store can reclaim the file.
Insight references are never touched: insights outlive recordings.

Usage:
    service = RecordingRetentionService(db_session)
    summary = service.purge_expired_recordings()
"""

from __future__ import annotations

from datetime import datetime, timedelta
import logging
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.constants import RECORDING_RETENTION_DAYS
from ..core.time_utils import utc_now
from ..domain.time_windows import recording_days_left
from ..repositories.factory import RepositoryFactory
from ..repositories.lesson_repository import LessonRepository
from .base import BaseService

logger = logging.getLogger(__name__)


class RecordingRetentionService(BaseService):
    """Clears recording references whose retention window has closed."""

    def __init__(self, db: Session, lesson_repository: Optional[LessonRepository] = None):
        super().__init__(db)
        self.lesson_repository = lesson_repository or RepositoryFactory.create_lesson_repository(db)

    @BaseService.measure_operation("purge_expired_recordings")
    def purge_expired_recordings(
        self, *, now: Optional[datetime] = None, dry_run: bool = False
    ) -> Dict[str, int]:
        """
        Clear recording_ref on every lesson whose recording has expired.

        Candidates are pre-filtered by start time (a lesson cannot have ended
        more than N days ago unless it started before that); the exact
        days-left rule is then applied per lesson.

        Returns:
            {"candidates": <scanned>, "expired": <matched>, "cleared": <rows written>}
        """
        now = now or utc_now()
        cutoff = now - timedelta(days=RECORDING_RETENTION_DAYS)

        with self.transaction():
            candidates = self.lesson_repository.list_recording_candidates(started_before=cutoff)
            expired: List[str] = [
                lesson.id
                for lesson in candidates
                if recording_days_left(now, lesson.scheduled_end) <= 0
            ]
            cleared = 0
            if expired and not dry_run:
                cleared = self.lesson_repository.clear_recording_refs(expired)

        summary = {"candidates": len(candidates), "expired": len(expired), "cleared": cleared}
        self.log_operation("purge_expired_recordings", dry_run=dry_run, **summary)
        return summary
