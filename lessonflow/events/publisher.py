"""Event publisher - writes events to the outbox inside the caller's transaction."""
from datetime import datetime
import logging
from typing import Any, Dict, Protocol

from lessonflow.repositories.event_outbox_repository import EventOutboxRepository

logger = logging.getLogger(__name__)


class Event(Protocol):
    """Protocol for event types."""

    lesson_id: str

    def to_dict(self) -> Dict[str, Any]:
        ...

    def idempotency_key(self) -> str:
        ...


class EventPublisher:
    """Publishes lesson events to the notification outbox."""

    def __init__(self, outbox_repository: EventOutboxRepository):
        self.outbox_repo = outbox_repository

    def publish(self, event: Event) -> bool:
        """
        Queue an event for delivery by the external notification worker.

        Returns:
            True if a new outbox row was written, False if the event's
            idempotency key had already been enqueued
        """
        event_type = type(event).__name__
        payload = event.to_dict()

        # Convert datetime objects to ISO strings for JSON serialization
        for key, value in payload.items():
            if isinstance(value, datetime):
                payload[key] = value.isoformat()

        _, created = self.outbox_repo.enqueue(
            event_type=f"event:{event_type}",
            aggregate_id=event.lesson_id,
            payload=payload,
            idempotency_key=event.idempotency_key(),
        )
        if not created:
            logger.info(
                "Duplicate %s suppressed",
                event_type,
                extra={"lesson_id": event.lesson_id, "idempotency_key": event.idempotency_key()},
            )
        return created
