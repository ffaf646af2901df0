"""FastAPI dependency providers for the lesson routes."""

import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from ..core.redis import get_async_redis_client
from ..database import get_db
from ..realtime.change_feed import LessonChangeFeed
from ..services.availability_aggregator import AvailabilityAggregator
from ..services.cancellation_service import CancellationService
from ..services.lesson_state_machine import LessonStateMachine
from ..services.lesson_store import LessonStore, SqlLessonStore

logger = logging.getLogger(__name__)


def get_current_user_id(x_user_id: Optional[str] = Header(None, alias="X-User-Id")) -> str:
    """Acting user id, set by the authenticating gateway in front of this service."""
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header",
        )
    return user_id


def get_state_machine(db: Session = Depends(get_db)) -> LessonStateMachine:
    return LessonStateMachine(db)


def get_cancellation_service(
    state_machine: LessonStateMachine = Depends(get_state_machine),
) -> CancellationService:
    return CancellationService(state_machine.db, state_machine=state_machine)


def get_lesson_store() -> LessonStore:
    return SqlLessonStore()


def get_aggregator(store: LessonStore = Depends(get_lesson_store)) -> AvailabilityAggregator:
    return AvailabilityAggregator(store)


async def get_change_feed() -> LessonChangeFeed:
    return LessonChangeFeed(await get_async_redis_client())
