"""Cancellation and reschedule eligibility."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from lessonflow.core.constants import CANCELLATION_REFUND_UNITS

from .time_windows import can_cancel, can_reschedule, minutes_until_start


@dataclass(frozen=True)
class CancellationDecision:
    allowed: bool
    minutes_until: float
    can_reschedule: bool
    refund_units: int

    @property
    def hours_until(self) -> float:
        return self.minutes_until / 60.0

    def to_payload(self) -> dict[str, object]:
        return {
            "allowed": self.allowed,
            "hours_until": round(self.hours_until, 2),
            "can_reschedule": self.can_reschedule,
            "refund_units": self.refund_units,
        }


def evaluate_cancellation(now: datetime, scheduled_start: datetime) -> CancellationDecision:
    """
    Decide whether a lesson may be cancelled at ``now``.

    The refund is flat-rate and never scales with lesson duration. When
    cancelling is refused, ``can_reschedule`` tells the caller whether the
    reschedule path can be offered instead.
    """
    allowed = can_cancel(now, scheduled_start)
    return CancellationDecision(
        allowed=allowed,
        minutes_until=minutes_until_start(now, scheduled_start),
        can_reschedule=can_reschedule(now, scheduled_start),
        refund_units=CANCELLATION_REFUND_UNITS if allowed else 0,
    )
