"""
Lessons routes - API v1

Lesson lifecycle and availability endpoints under /api/v1/lessons.
All business logic delegated to the services.

Endpoints:
    POST /cancel                          → Cancel a lesson (refund or TOO_LATE)
    POST /{lesson_id}/acknowledge         → Teacher acknowledges a pending lesson
    POST /{lesson_id}/dismiss             → Teacher dismisses a pending request
    GET  /overview                        → Learner/guardian availability view
    GET  /history                         → Past lessons for learners
    GET  /teacher/{teacher_id}/overview   → Teacher availability view
    GET  /teacher/{teacher_id}/pending    → Lessons waiting on the teacher
"""

import asyncio
import logging
from typing import List, NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.params import Path

from ...core.constants import LESSONS_TABLE
from ...core.exceptions import DomainException, ValidationException
from ...realtime.change_feed import LessonChangeFeed
from ...schemas.cancellation import (
    CancelLessonRequest,
    CancelLessonResponse,
    LessonTransitionResponse,
    TooLateToCancelResponse,
)
from ...schemas.lesson_views import AvailabilityView, PastLessonsView, PendingAcknowledgmentsView
from ...schemas.realtime import LessonChangeEvent
from ...services.availability_aggregator import AvailabilityAggregator, Viewer
from ...services.cancellation_service import CancellationService
from ...services.lesson_state_machine import LessonStateMachine, TransitionResult
from ..dependencies import (
    get_aggregator,
    get_cancellation_service,
    get_change_feed,
    get_current_user_id,
    get_state_machine,
)

logger = logging.getLogger(__name__)

# V1 router - no prefix here, added when mounting in main.py
router = APIRouter(tags=["lessons-v1"])

ULID_PATH_PATTERN = r"^[0-9A-HJKMNP-TV-Z]{26}$"


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


async def _announce(
    feed: LessonChangeFeed,
    lesson_id: str,
    learner_id: Optional[str],
    teacher_id: Optional[str],
) -> None:
    # Fire-and-forget; the interval poll covers a lost notification
    await feed.publish(
        LessonChangeEvent(
            table=LESSONS_TABLE,
            event_type="UPDATE",
            row_id=lesson_id,
            learner_id=learner_id,
            teacher_id=teacher_id,
        )
    )


def _transition_response(result: TransitionResult) -> LessonTransitionResponse:
    return LessonTransitionResponse(
        lesson_id=result.lesson_id,
        status=result.status,
        confirmation_status=result.confirmation_status,
        previous_status=result.previous_status,
        previous_confirmation=result.previous_confirmation,
        welcome_notice_enqueued=result.welcome_notice_enqueued,
    )


def _learner_viewer(learner_ids: List[str], tz: Optional[str]) -> Viewer:
    try:
        return Viewer.for_learners(*learner_ids, timezone=tz)
    except ValidationException as exc:
        handle_domain_exception(exc)


@router.post(
    "/cancel",
    response_model=CancelLessonResponse,
    responses={422: {"model": TooLateToCancelResponse, "description": "Too late to cancel"}},
)
async def cancel_lesson(
    payload: CancelLessonRequest,
    current_user_id: str = Depends(get_current_user_id),
    service: CancellationService = Depends(get_cancellation_service),
    feed: LessonChangeFeed = Depends(get_change_feed),
) -> CancelLessonResponse:
    """Cancel a lesson and refund one credit, or explain why it is too late."""
    try:
        outcome = await asyncio.to_thread(
            service.request_cancellation,
            payload.lesson_id,
            payload.reason,
            actor_id=current_user_id,
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Unexpected error in cancel_lesson: %s", e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred cancelling the lesson",
        )

    if not outcome.cancelled:
        message = "Too late to cancel this lesson."
        if outcome.can_reschedule:
            message += " You can still reschedule it."
        detail = TooLateToCancelResponse(
            lesson_id=outcome.lesson_id,
            hours_until=outcome.hours_until if outcome.hours_until is not None else 0.0,
            can_reschedule=outcome.can_reschedule,
            message=message,
        )
        raise HTTPException(status_code=422, detail=detail.model_dump())

    await _announce(feed, outcome.lesson_id, outcome.learner_id, outcome.teacher_id)
    return CancelLessonResponse(
        lesson_id=outcome.lesson_id,
        credits_refunded=outcome.credits_refunded,
        status=outcome.status or "cancelled",
    )


@router.post("/{lesson_id}/acknowledge", response_model=LessonTransitionResponse)
async def acknowledge_lesson(
    lesson_id: str = Path(..., description="Lesson ULID", pattern=ULID_PATH_PATTERN),
    current_user_id: str = Depends(get_current_user_id),
    state_machine: LessonStateMachine = Depends(get_state_machine),
    feed: LessonChangeFeed = Depends(get_change_feed),
) -> LessonTransitionResponse:
    """Teacher acknowledges a pending lesson."""
    try:
        result = await asyncio.to_thread(
            state_machine.acknowledge, lesson_id, actor_id=current_user_id
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Unexpected error in acknowledge_lesson: %s", e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred acknowledging the lesson",
        )

    await _announce(feed, result.lesson_id, result.learner_id, result.teacher_id)
    return _transition_response(result)


@router.post("/{lesson_id}/dismiss", response_model=LessonTransitionResponse)
async def dismiss_lesson(
    lesson_id: str = Path(..., description="Lesson ULID", pattern=ULID_PATH_PATTERN),
    current_user_id: str = Depends(get_current_user_id),
    state_machine: LessonStateMachine = Depends(get_state_machine),
    feed: LessonChangeFeed = Depends(get_change_feed),
) -> LessonTransitionResponse:
    """Teacher dismisses a pending request (auto-acknowledged, no welcome notice)."""
    try:
        result = await asyncio.to_thread(state_machine.dismiss, lesson_id, actor_id=current_user_id)
    except DomainException as exc:
        handle_domain_exception(exc)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Unexpected error in dismiss_lesson: %s", e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred dismissing the lesson",
        )

    await _announce(feed, result.lesson_id, result.learner_id, result.teacher_id)
    return _transition_response(result)


@router.get("/overview", response_model=AvailabilityView)
async def get_overview(
    learner_id: List[str] = Query(..., description="Learner id; repeat for guardians"),
    tz: Optional[str] = Query(None, description="IANA timezone for is_today"),
    current_user_id: str = Depends(get_current_user_id),
    aggregator: AvailabilityAggregator = Depends(get_aggregator),
) -> AvailabilityView:
    """Upcoming lessons, course sessions and recent lessons for one or more learners."""
    viewer = _learner_viewer(learner_id, tz)
    return await aggregator.build_view(viewer)


@router.get("/history", response_model=PastLessonsView)
async def get_history(
    learner_id: List[str] = Query(..., description="Learner id; repeat for guardians"),
    limit: int = Query(20, ge=1, le=100),
    current_user_id: str = Depends(get_current_user_id),
    aggregator: AvailabilityAggregator = Depends(get_aggregator),
) -> PastLessonsView:
    """Past lessons, newest first, with recording/insight exposure."""
    viewer = _learner_viewer(learner_id, None)
    return await aggregator.past_lessons(viewer, limit=limit)


@router.get("/teacher/{teacher_id}/overview", response_model=AvailabilityView)
async def get_teacher_overview(
    teacher_id: str = Path(..., description="Teacher id"),
    tz: Optional[str] = Query(None, description="IANA timezone for is_today"),
    current_user_id: str = Depends(get_current_user_id),
    aggregator: AvailabilityAggregator = Depends(get_aggregator),
) -> AvailabilityView:
    if current_user_id != teacher_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not your schedule")
    try:
        viewer = Viewer.for_teacher(teacher_id, timezone=tz)
    except ValidationException as exc:
        handle_domain_exception(exc)
    return await aggregator.build_view(viewer)


@router.get("/teacher/{teacher_id}/pending", response_model=PendingAcknowledgmentsView)
async def get_pending_acknowledgments(
    teacher_id: str = Path(..., description="Teacher id"),
    current_user_id: str = Depends(get_current_user_id),
    aggregator: AvailabilityAggregator = Depends(get_aggregator),
) -> PendingAcknowledgmentsView:
    """Lessons waiting for the teacher's acknowledgment, soonest first."""
    if current_user_id != teacher_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not your schedule")
    return await aggregator.pending_acknowledgments(teacher_id)
