# lessonflow/tasks/recording_tasks.py
"""
Celery task wrapping the recording retention sweep.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from lessonflow.database import SessionLocal
from lessonflow.services.recording_retention_service import RecordingRetentionService
from lessonflow.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(
    name="retention.purge_expired_recordings",
    bind=True,
    max_retries=3,
    default_retry_delay=60,
)
def purge_expired_recordings(self: Any, dry_run: Optional[bool] = None) -> Dict[str, int]:
    """Clear expired recording references; logs the per-run summary."""
    dry_run_to_use = bool(dry_run)
    db = SessionLocal()
    service = RecordingRetentionService(db)

    try:
        result = service.purge_expired_recordings(dry_run=dry_run_to_use)
        logger.info(
            "Recording retention sweep completed",
            extra={"dry_run": dry_run_to_use, "result": result},
        )
        return result
    except Exception as exc:
        logger.exception("Recording retention sweep failed", extra={"dry_run": dry_run_to_use})
        raise self.retry(exc=exc)
    finally:
        db.close()
