from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from uuid import UUID, uuid4

ZERO_PERCENT = Decimal("0.00")
FULL_PERCENT = Decimal("100.00")
_TWO_PLACES = Decimal("0.01")


def percent_of(part: int, whole: int) -> Decimal:
    """``part / whole * 100`` rounded half-up to two decimals; 0 when whole is 0."""
    if whole <= 0:
        return ZERO_PERCENT
    return (Decimal(part) * 100 / Decimal(whole)).quantize(
        _TWO_PLACES, rounding=ROUND_HALF_UP
    )


class EnrollmentStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"

    @classmethod
    def for_percentage(cls, percentage: Decimal) -> EnrollmentStatus:
        if percentage <= ZERO_PERCENT:
            return cls.NOT_STARTED
        if percentage >= FULL_PERCENT:
            return cls.COMPLETED
        return cls.IN_PROGRESS


@dataclass(frozen=True, slots=True)
class Enrollment:
    """One learner's registration instance in one course.

    ``percentage`` and ``status`` are derived fields owned by the
    EnrollmentAggregator.  ``version`` is bumped on every aggregator write
    and used as the optimistic-lock token.  A retired enrollment has been
    superseded by a later re-enrollment in the same course.
    """

    id: UUID
    learner_id: UUID
    course_id: UUID
    enrolled_at: int
    status: EnrollmentStatus = EnrollmentStatus.NOT_STARTED
    percentage: Decimal = ZERO_PERCENT
    version: int = 0
    completed_at: int | None = None
    retired_at: int | None = None

    @staticmethod
    def new(*, learner_id: UUID, course_id: UUID, enrolled_at: int) -> Enrollment:
        return Enrollment(
            id=uuid4(),
            learner_id=learner_id,
            course_id=course_id,
            enrolled_at=enrolled_at,
        )

    @property
    def is_active(self) -> bool:
        return self.retired_at is None
