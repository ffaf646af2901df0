# lessonflow/realtime/change_feed.py
"""
Lesson change feed over Redis Pub/Sub.

Row-level change notifications for the watched tables are published on a
single channel. Delivery is best-effort:
- Publishing is fire-and-forget (failures logged, not raised)
- Subscribers may miss events; the reconciliation loop's interval poll
  bounds staleness regardless
- Malformed payloads are logged and skipped, never raised to the consumer
"""

from __future__ import annotations

from dataclasses import dataclass, field
import json
import logging
from typing import TYPE_CHECKING, AsyncIterator, FrozenSet, Iterable, Optional

from pydantic import ValidationError
from redis.asyncio import Redis as AsyncRedis

from lessonflow.core.config import settings
from lessonflow.core.constants import COURSE_SESSIONS_TABLE, LESSONS_TABLE, WATCHED_TABLES
from lessonflow.schemas.realtime import LessonChangeEvent

if TYPE_CHECKING:
    from redis.asyncio.client import PubSub

logger = logging.getLogger(__name__)


class LessonChangeFeed:
    """Publishes and consumes lesson change events on one Redis channel."""

    def __init__(self, redis: Optional[AsyncRedis], channel: Optional[str] = None):
        self._redis = redis
        self.channel = channel or settings.lesson_change_channel
        self._publish_count = 0
        self._error_count = 0

    @property
    def is_enabled(self) -> bool:
        return self._redis is not None

    def get_stats(self) -> dict[str, int]:
        return {"publish_count": self._publish_count, "error_count": self._error_count}

    async def publish(self, event: LessonChangeEvent) -> int:
        """
        Publish a change event.

        Returns:
            Number of subscribers who received it (0 if disabled or failed)
        """
        if self._redis is None:
            logger.debug("[CHANGE-FEED] Redis not configured, skipping publish")
            return 0

        try:
            receivers: int = await self._redis.publish(self.channel, event.model_dump_json())
            self._publish_count += 1
            logger.debug(
                f"[CHANGE-FEED] Published {event.table}.{event.event_type} for {event.row_id} "
                f"(subscribers: {receivers})"
            )
            return receivers
        except Exception as e:
            # Fire-and-forget: log error but don't fail the mutation
            self._error_count += 1
            logger.error(f"[CHANGE-FEED] Failed to publish to {self.channel}: {e}")
            return 0

    async def subscribe(self) -> AsyncIterator[LessonChangeEvent]:
        """
        Yield parsed change events until the consumer stops iterating.

        Usage:
            async for event in feed.subscribe():
                ...
        """
        if self._redis is None:
            raise RuntimeError("Redis not configured for the change feed")

        pubsub: PubSub = self._redis.pubsub()
        try:
            await pubsub.subscribe(self.channel)
            logger.info(f"[CHANGE-FEED] Subscribed to channel: {self.channel}")
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                event = parse_change_event(message.get("data"))
                if event is not None:
                    yield event
        finally:
            await pubsub.unsubscribe(self.channel)
            await pubsub.aclose()
            logger.info(f"[CHANGE-FEED] Unsubscribed from channel: {self.channel}")


def parse_change_event(raw: object) -> Optional[LessonChangeEvent]:
    """Parse a raw Pub/Sub payload; returns None for anything malformed."""
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    if not isinstance(raw, str):
        logger.warning("[CHANGE-FEED] Ignoring non-text payload")
        return None
    try:
        return LessonChangeEvent.model_validate(json.loads(raw))
    except (json.JSONDecodeError, ValidationError) as e:
        logger.warning(f"[CHANGE-FEED] Ignoring malformed change event: {e}")
        return None


@dataclass
class ViewerRelevance:
    """
    Decides whether a change event concerns the current viewer.

    A change is relevant when it touches a watched table and either names one
    of the viewer's parties/courses or touches a row currently on screen.
    Events that carry no party information at all are treated as relevant.
    """

    learner_ids: FrozenSet[str] = frozenset()
    teacher_id: Optional[str] = None
    course_ids: FrozenSet[str] = frozenset()
    visible_row_ids: set[str] = field(default_factory=set)

    def track_visible(self, row_ids: Iterable[str]) -> None:
        """Replace the set of rows currently rendered."""
        self.visible_row_ids = set(row_ids)

    def __call__(self, event: LessonChangeEvent) -> bool:
        if event.table not in WATCHED_TABLES:
            return False
        if event.row_id in self.visible_row_ids:
            return True

        if event.table == LESSONS_TABLE:
            if event.learner_id is None and event.teacher_id is None:
                return True
            if event.learner_id is not None and event.learner_id in self.learner_ids:
                return True
            return self.teacher_id is not None and event.teacher_id == self.teacher_id

        if event.table == COURSE_SESSIONS_TABLE:
            if event.course_id is None and event.teacher_id is None:
                return True
            if event.course_id is not None and event.course_id in self.course_ids:
                return True
            return self.teacher_id is not None and event.teacher_id == self.teacher_id

        return False
