"""Pydantic schemas for lesson views, mutations and change events."""

from .cancellation import (
    CancelLessonRequest,
    CancelLessonResponse,
    LessonTransitionResponse,
    TooLateToCancelResponse,
)
from .lesson_views import (
    AvailabilityView,
    CourseSessionViewRow,
    LessonViewRow,
    PastLessonsView,
    PendingAcknowledgmentRow,
    PendingAcknowledgmentsView,
    RecentLessonRow,
    UpstreamFailure,
)
from .realtime import LessonChangeEvent

__all__ = [
    "AvailabilityView",
    "CancelLessonRequest",
    "CancelLessonResponse",
    "CourseSessionViewRow",
    "LessonChangeEvent",
    "LessonTransitionResponse",
    "LessonViewRow",
    "PastLessonsView",
    "PendingAcknowledgmentRow",
    "PendingAcknowledgmentsView",
    "RecentLessonRow",
    "TooLateToCancelResponse",
    "UpstreamFailure",
]
