# lessonflow/services/availability_aggregator.py
"""
Availability Aggregator.

Builds the dashboard view for a viewer (one learner, a guardian's learners,
or a teacher): upcoming 1:1 lessons, upcoming course sessions and the most
recent completed lessons with recording/insight exposure resolved.

Time is the authoritative filter. A lesson whose scheduled end has passed is
never "upcoming", whatever its stored status says, because status updates lag
reality. Each sub-fetch is isolated: a failing source is logged, recorded on
the view as an UpstreamFailure and replaced by an empty list.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, TypeVar

import pytz

from ..core.config import settings
from ..core.exceptions import UpstreamUnavailable, ValidationException
from ..core.time_utils import ensure_utc, utc_now
from ..domain.artifact_gate import evaluate_artifacts, room_ready
from ..domain.time_windows import compute_course_window, compute_window, minutes_until_start
from ..models.course_session import CourseSession, LiveStatus
from ..models.lesson import ConfirmationStatus, Lesson, LessonStatus
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.course_session_repository import CourseSessionFilter
from ..repositories.lesson_repository import ArtifactRefs, LessonFilter
from ..schemas.lesson_views import (
    AvailabilityView,
    CourseSessionViewRow,
    LessonViewRow,
    PastLessonsView,
    PendingAcknowledgmentRow,
    PendingAcknowledgmentsView,
    RecentLessonRow,
    UpstreamFailure,
)
from .base import BaseService
from .lesson_store import LessonStore

logger = logging.getLogger(__name__)

R = TypeVar("R")

DEFAULT_HISTORY_LIMIT = 20


@dataclass(frozen=True)
class Viewer:
    """Who the view is built for: one or more learners, or a teacher."""

    learner_ids: Tuple[str, ...] = ()
    teacher_id: Optional[str] = None
    timezone: Optional[str] = None

    def __post_init__(self) -> None:
        if bool(self.learner_ids) == bool(self.teacher_id):
            raise ValidationException(
                "A viewer is either a set of learners or a single teacher",
                code="INVALID_VIEWER",
            )
        if self.timezone is not None and self.timezone not in pytz.all_timezones_set:
            raise ValidationException(
                f"Unknown timezone: {self.timezone}", code="INVALID_TIMEZONE"
            )

    @classmethod
    def for_learners(cls, *learner_ids: str, timezone: Optional[str] = None) -> "Viewer":
        # Guardians may list the same child twice; keep first-seen order
        unique = tuple(dict.fromkeys(learner_id for learner_id in learner_ids if learner_id))
        return cls(learner_ids=unique, timezone=timezone)

    @classmethod
    def for_teacher(cls, teacher_id: str, timezone: Optional[str] = None) -> "Viewer":
        return cls(teacher_id=teacher_id, timezone=timezone)

    @property
    def is_teacher(self) -> bool:
        return self.teacher_id is not None


@dataclass
class _Collected:
    failures: List[UpstreamFailure] = field(default_factory=list)


# --------------------------------------------------------------------- row builders


def build_lesson_row(lesson: Lesson, now: datetime, tz_name: Optional[str]) -> LessonViewRow:
    window = compute_window(now, lesson.starts_at, int(lesson.duration_minutes), tz_name=tz_name)
    ready = window.can_join and room_ready(lesson.room_reference)
    return LessonViewRow(
        lesson_id=lesson.id,
        learner_id=lesson.learner_id,
        teacher_id=lesson.teacher_id,
        subject_id=lesson.subject_id,
        scheduled_start=lesson.starts_at,
        scheduled_end=lesson.scheduled_end,
        duration_minutes=int(lesson.duration_minutes),
        status=lesson.status,
        confirmation_status=lesson.confirmation_status,
        minutes_until_start=round(window.minutes_until_start, 2),
        is_today=window.is_today,
        can_join=window.can_join,
        join_ready=ready,
        can_cancel=window.can_cancel,
        can_reschedule=window.can_reschedule,
        lesson_is_past=window.lesson_is_past,
        room_reference=lesson.room_reference if ready else None,
    )


def build_course_row(
    session: CourseSession, now: datetime, tz_name: Optional[str]
) -> CourseSessionViewRow:
    window = compute_course_window(
        now, session.starts_at, int(session.duration_minutes), tz_name=tz_name
    )
    room_code = session.exposed_room_code
    return CourseSessionViewRow(
        session_id=session.id,
        course_id=session.course_id,
        teacher_id=session.teacher_id,
        title=session.title or "",
        session_date=session.session_date,
        schedule_time=session.schedule_time,
        scheduled_start=session.starts_at,
        scheduled_end=session.scheduled_end,
        duration_minutes=int(session.duration_minutes),
        live_status=session.live_status,
        minutes_until_start=round(window.minutes_until_start, 2),
        is_today=window.is_today,
        can_join=window.can_join,
        join_ready=window.can_join and room_ready(room_code),
        room_code=room_code,
    )


def build_recent_row(
    lesson: Lesson, refs: Optional[ArtifactRefs], now: datetime
) -> RecentLessonRow:
    refs = refs or ArtifactRefs()
    exposure = evaluate_artifacts(now, lesson.scheduled_end, refs.recording_ref, refs.insight_ref)
    return RecentLessonRow(
        lesson_id=lesson.id,
        learner_id=lesson.learner_id,
        teacher_id=lesson.teacher_id,
        subject_id=lesson.subject_id,
        scheduled_start=lesson.starts_at,
        scheduled_end=lesson.scheduled_end,
        duration_minutes=int(lesson.duration_minutes),
        status=lesson.status,
        recording_days_left=exposure.recording_days_left,
        recording_state=exposure.recording_state.value,
        has_recording=exposure.has_recording,
        has_insight=exposure.has_insight,
        recording_ref=exposure.recording_ref,
        insight_ref=exposure.insight_ref,
    )


def _ascending(items: Sequence[Lesson]) -> List[Lesson]:
    return sorted(items, key=lambda lesson: (lesson.starts_at, lesson.id))


def _descending(items: Sequence[Lesson]) -> List[Lesson]:
    # Newest first; equal starts keep ascending id order
    by_id = sorted(items, key=lambda lesson: lesson.id)
    return sorted(by_id, key=lambda lesson: lesson.starts_at, reverse=True)


# ----------------------------------------------------------------------- aggregator


class AvailabilityAggregator:
    """Assembles lesson views from a LessonStore; never mutates source records."""

    def __init__(
        self,
        store: LessonStore,
        *,
        upcoming_limit: Optional[int] = None,
        course_session_limit: Optional[int] = None,
        recent_limit: Optional[int] = None,
        default_timezone: Optional[str] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.upcoming_limit = upcoming_limit or settings.upcoming_lesson_limit
        self.course_session_limit = course_session_limit or settings.course_session_preview_limit
        self.recent_limit = recent_limit or settings.recent_lesson_limit
        self.default_timezone = default_timezone or settings.default_timezone
        self.clock = clock
        self.logger = logging.getLogger(self.__class__.__name__)

    @BaseService.measure_operation("build_availability_view")
    async def build_view(self, viewer: Viewer, now: Optional[datetime] = None) -> AvailabilityView:
        """
        Build the three-list view for ``viewer`` at ``now``.

        The sub-fetches run concurrently; one failing never blanks the others.
        """
        at = ensure_utc(now) if now is not None else self.clock()
        tz_name = viewer.timezone or self.default_timezone
        collected = _Collected()

        upcoming, sessions, recent = await asyncio.gather(
            self._isolated("lessons", collected, lambda: self._upcoming_lessons(viewer, at, tz_name)),
            self._isolated(
                "course_sessions", collected, lambda: self._upcoming_sessions(viewer, at, tz_name)
            ),
            self._isolated(
                "recent_lessons", collected, lambda: self._recent_lessons(viewer, at, collected)
            ),
        )

        return AvailabilityView(
            generated_at=at,
            timezone=tz_name,
            upcoming_lessons=upcoming,
            course_sessions=sessions,
            recent_lessons=recent,
            failures=sorted(collected.failures, key=lambda failure: failure.source),
        )

    @BaseService.measure_operation("pending_acknowledgments")
    async def pending_acknowledgments(
        self, teacher_id: str, now: Optional[datetime] = None
    ) -> PendingAcknowledgmentsView:
        """Booked lessons still waiting on the teacher, soonest first."""
        at = ensure_utc(now) if now is not None else self.clock()
        collected = _Collected()

        async def fetch() -> List[PendingAcknowledgmentRow]:
            lessons = await self.store.list_lessons(
                LessonFilter(
                    teacher_id=teacher_id,
                    statuses=(LessonStatus.BOOKED.value,),
                    confirmation_statuses=(ConfirmationStatus.PENDING.value,),
                )
            )
            return [self._pending_row(lesson, at) for lesson in _ascending(lessons)]

        items = await self._isolated("lessons", collected, fetch)
        return PendingAcknowledgmentsView(
            teacher_id=teacher_id, generated_at=at, items=items, failures=collected.failures
        )

    @BaseService.measure_operation("past_lessons")
    async def past_lessons(
        self,
        viewer: Viewer,
        now: Optional[datetime] = None,
        limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> PastLessonsView:
        """
        Lesson history, newest first.

        Includes completed lessons and booked lessons whose scheduled end has
        already passed (status not yet flipped).
        """
        at = ensure_utc(now) if now is not None else self.clock()
        collected = _Collected()

        async def fetch() -> List[RecentLessonRow]:
            lessons = await self.store.list_lessons(
                self._viewer_filter(
                    viewer,
                    statuses=(LessonStatus.COMPLETED.value, LessonStatus.BOOKED.value),
                    start_before=at,
                    descending=True,
                )
            )
            finished = [
                lesson
                for lesson in lessons
                if lesson.status == LessonStatus.COMPLETED.value or lesson.scheduled_end <= at
            ]
            selected = _descending(finished)[:limit]
            refs = await self._resolve_artifacts(selected, collected)
            return [build_recent_row(lesson, refs.get(lesson.id), at) for lesson in selected]

        items = await self._isolated("lessons", collected, fetch)
        return PastLessonsView(generated_at=at, items=items, failures=collected.failures)

    # ------------------------------------------------------------------- sub-fetches

    async def _upcoming_lessons(
        self, viewer: Viewer, at: datetime, tz_name: str
    ) -> List[LessonViewRow]:
        lessons = await self.store.list_lessons(
            self._viewer_filter(viewer, statuses=(LessonStatus.BOOKED.value,))
        )
        live = [lesson for lesson in lessons if lesson.scheduled_end > at]
        capped = _ascending(live)[: self.upcoming_limit]
        return [build_lesson_row(lesson, at, tz_name) for lesson in capped]

    async def _upcoming_sessions(
        self, viewer: Viewer, at: datetime, tz_name: str
    ) -> List[CourseSessionViewRow]:
        # Coarse date pre-filter one day back so sessions spanning midnight survive
        session_filter = CourseSessionFilter(
            learner_ids=viewer.learner_ids,
            teacher_id=viewer.teacher_id,
            from_date=(at - timedelta(days=1)).date(),
        )
        sessions = await self.store.list_course_sessions(session_filter)
        upcoming = [
            session
            for session in sessions
            if session.scheduled_end > at and session.live_status != LiveStatus.ENDED.value
        ]
        upcoming.sort(key=lambda session: (session.starts_at, session.id))
        return [
            build_course_row(session, at, tz_name)
            for session in upcoming[: self.course_session_limit]
        ]

    async def _recent_lessons(
        self, viewer: Viewer, at: datetime, collected: _Collected
    ) -> List[RecentLessonRow]:
        lessons = await self.store.list_lessons(
            self._viewer_filter(
                viewer,
                statuses=(LessonStatus.COMPLETED.value,),
                descending=True,
                limit=self.recent_limit,
            )
        )
        selected = _descending(lessons)[: self.recent_limit]
        refs = await self._resolve_artifacts(selected, collected)
        return [build_recent_row(lesson, refs.get(lesson.id), at) for lesson in selected]

    async def _resolve_artifacts(
        self, lessons: Sequence[Lesson], collected: _Collected
    ) -> Dict[str, ArtifactRefs]:
        """One batched lookup for every selected lesson, never one per row."""
        if not lessons:
            return {}
        return await self._isolated(
            "artifacts",
            collected,
            lambda: self.store.resolve_artifacts([lesson.id for lesson in lessons]),
            default={},
        )

    # ---------------------------------------------------------------------- helpers

    @staticmethod
    def _viewer_filter(viewer: Viewer, **kwargs) -> LessonFilter:
        return LessonFilter(learner_ids=viewer.learner_ids, teacher_id=viewer.teacher_id, **kwargs)

    def _pending_row(self, lesson: Lesson, at: datetime) -> PendingAcknowledgmentRow:
        requested_hours_ago: Optional[float] = None
        if lesson.created_at is not None:
            requested_hours_ago = round(
                (at - ensure_utc(lesson.created_at)).total_seconds() / 3600, 2
            )
        return PendingAcknowledgmentRow(
            lesson_id=lesson.id,
            learner_id=lesson.learner_id,
            subject_id=lesson.subject_id,
            scheduled_start=lesson.starts_at,
            duration_minutes=int(lesson.duration_minutes),
            hours_until_lesson=round(minutes_until_start(at, lesson.starts_at) / 60, 2),
            requested_hours_ago=requested_hours_ago,
            is_urgent=(
                requested_hours_ago is not None
                and requested_hours_ago > settings.pending_ack_urgent_hours
            ),
            is_overdue=at > lesson.starts_at,
        )

    async def _isolated(
        self,
        source: str,
        collected: _Collected,
        fetch: Callable[[], Awaitable[R]],
        default: Optional[R] = None,
    ) -> R:
        try:
            return await fetch()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            error = UpstreamUnavailable(source=source, error=exc)
            self.logger.warning(
                "%s; continuing with an empty list",
                error.message,
                extra={"source": source, "error_type": type(exc).__name__},
            )
            prometheus_metrics.record_upstream_failure(source)
            collected.failures.append(
                UpstreamFailure(source=source, code=error.code, error_type=type(exc).__name__)
            )
            return default if default is not None else []  # type: ignore[return-value]
