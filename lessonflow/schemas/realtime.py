"""Change notifications carried by the realtime feed."""

from typing import Literal, Optional

from ._strict_base import StrictModel


class LessonChangeEvent(StrictModel):
    """One row-level change on a watched table."""

    table: str
    event_type: Literal["INSERT", "UPDATE", "DELETE"]
    row_id: str
    learner_id: Optional[str] = None
    teacher_id: Optional[str] = None
    course_id: Optional[str] = None
