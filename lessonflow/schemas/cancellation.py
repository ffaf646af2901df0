"""Request/response models for lesson mutations."""

from typing import Literal

from pydantic import Field

from ._strict_base import StrictModel, StrictRequestModel


class CancelLessonRequest(StrictRequestModel):
    lesson_id: str = Field(..., min_length=1, max_length=26)
    reason: str = Field(..., min_length=1, max_length=1000)


class CancelLessonResponse(StrictModel):
    lesson_id: str
    credits_refunded: int
    status: str


class TooLateToCancelResponse(StrictModel):
    """Returned with 422 when the notice period has passed."""

    lesson_id: str
    code: Literal["TOO_LATE"] = "TOO_LATE"
    hours_until: float
    can_reschedule: bool
    message: str


class LessonTransitionResponse(StrictModel):
    lesson_id: str
    status: str
    confirmation_status: str
    previous_status: str
    previous_confirmation: str
    welcome_notice_enqueued: bool = False
