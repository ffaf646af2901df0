# lessonflow/repositories/cancellation_repository.py
"""
Cancellation Repository.

Cancellation records are append-only; there is deliberately no update helper.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..models.cancellation import CancellationRecord
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class CancellationRepository(BaseRepository[CancellationRecord]):
    def __init__(self, db: Session):
        super().__init__(db, CancellationRecord)

    def record(
        self,
        *,
        lesson_id: str,
        cancelled_by_id: Optional[str],
        reason: str,
        credits_refunded: int,
        hours_before_start: Optional[float],
    ) -> CancellationRecord:
        return self.create(
            lesson_id=lesson_id,
            cancelled_by_id=cancelled_by_id,
            reason=reason,
            credits_refunded=credits_refunded,
            hours_before_start=hours_before_start,
        )

    def get_by_lesson_id(self, lesson_id: str) -> Optional[CancellationRecord]:
        rows = self.find_by(lesson_id=lesson_id)
        return rows[0] if rows else None
