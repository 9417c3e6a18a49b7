from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from uuid import UUID, uuid4


class ProgressState(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


@dataclass(frozen=True, slots=True)
class LessonProgress:
    """Completion of one lesson for one enrollment.

    Identity is (learner_id, lesson_id, enrollment_id).  The same learner
    may hold several enrollments in a course over time, so progress is
    never looked up by (learner_id, lesson_id) alone.  ``enrollment_id``
    is None only for rows orphaned by an enrollment deletion.
    """

    id: UUID
    learner_id: UUID
    lesson_id: UUID
    enrollment_id: UUID | None
    state: ProgressState = ProgressState.NOT_STARTED
    started_at: int | None = None
    completed_at: int | None = None

    @staticmethod
    def new(*, learner_id: UUID, lesson_id: UUID, enrollment_id: UUID) -> LessonProgress:
        return LessonProgress(
            id=uuid4(),
            learner_id=learner_id,
            lesson_id=lesson_id,
            enrollment_id=enrollment_id,
        )

    @property
    def is_completed(self) -> bool:
        return self.state is ProgressState.COMPLETED

    def start(self, now: int) -> LessonProgress:
        """not_started → in_progress.  Any other state is returned as-is."""
        if self.state is not ProgressState.NOT_STARTED:
            return self
        return replace(self, state=ProgressState.IN_PROGRESS, started_at=now)

    def complete(self, now: int) -> LessonProgress:
        """Any state → completed.  Re-completing refreshes completed_at."""
        return replace(
            self,
            state=ProgressState.COMPLETED,
            started_at=self.started_at if self.started_at is not None else now,
            completed_at=now,
        )
