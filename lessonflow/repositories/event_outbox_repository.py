# lessonflow/repositories/event_outbox_repository.py
"""
Repository for the lesson event outbox.

Enqueue is idempotent on ``idempotency_key``: a second insert with the same key
is a no-op at the database level (ON CONFLICT DO NOTHING / INSERT OR IGNORE),
so concurrent transitions cannot produce duplicate notices.
"""

from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Any, Optional, Tuple, cast

from sqlalchemy import insert, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.orm import Session
import ulid

from ..database.session_utils import get_dialect_name
from ..models.event_outbox import EventOutbox, EventOutboxStatus

logger = logging.getLogger(__name__)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class EventOutboxRepository:
    """Data access helpers for event outbox rows."""

    def __init__(self, db: Session):
        self.db = db
        self._dialect = get_dialect_name(db, default="postgresql").lower()

    def enqueue(
        self,
        event_type: str,
        aggregate_id: str,
        payload: Optional[dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> Tuple[EventOutbox, bool]:
        """
        Insert an outbox row unless one already exists for the idempotency key.

        Returns:
            (row, created) where ``created`` is False if the key already existed
        """
        payload = payload or {}
        now = _now_utc()
        key = idempotency_key or f"{event_type}:{aggregate_id}"
        event_id = str(ulid.ULID())
        values = dict(
            id=event_id,
            event_type=event_type,
            aggregate_id=aggregate_id,
            payload=payload,
            idempotency_key=key,
            status=EventOutboxStatus.PENDING.value,
            attempt_count=0,
            next_attempt_at=now,
        )

        inserted = False
        if self._dialect == "postgresql":
            stmt = (
                pg_insert(EventOutbox)
                .values(**values)
                .on_conflict_do_nothing(index_elements=["idempotency_key"])
                .returning(EventOutbox.id)
            )
            inserted = self.db.execute(stmt).scalar_one_or_none() is not None
        else:
            stmt = insert(EventOutbox).values(**values)
            if self._dialect == "sqlite":
                stmt = stmt.prefix_with("OR IGNORE")
            result = self.db.execute(stmt)
            inserted = bool(getattr(result, "rowcount", 0))

        if inserted:
            self.db.flush()
            row = cast(Optional[EventOutbox], self.db.get(EventOutbox, event_id))
            if row is None:
                raise RuntimeError("Inserted outbox row could not be reloaded")
            return row, True

        existing = self.get_by_key(key)
        if existing is None:
            raise RuntimeError("Outbox row not found after enqueue conflict")
        logger.debug("Outbox key %s already enqueued; skipping", key)
        return existing, False

    def get_by_key(self, idempotency_key: str) -> Optional[EventOutbox]:
        result = self.db.execute(
            select(EventOutbox).where(EventOutbox.idempotency_key == idempotency_key)
        )
        return cast(Optional[EventOutbox], result.scalar_one_or_none())

