from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID, uuid4

from lms.models.enrollment import percent_of


@dataclass(frozen=True, slots=True)
class AttemptAnswer:
    question_id: UUID
    selected_option_ids: tuple[UUID, ...]
    is_correct: bool
    points_awarded: int


@dataclass(frozen=True, slots=True)
class Attempt:
    """One graded quiz submission.  Never edited once written."""

    id: UUID
    quiz_id: UUID
    learner_id: UUID
    enrollment_id: UUID
    attempt_number: int
    score: int
    max_score: int
    passed: bool
    submitted_at: int
    answers: tuple[AttemptAnswer, ...] = ()

    @staticmethod
    def new(
        *,
        quiz_id: UUID,
        learner_id: UUID,
        enrollment_id: UUID,
        attempt_number: int,
        score: int,
        max_score: int,
        passed: bool,
        submitted_at: int,
        answers: tuple[AttemptAnswer, ...] = (),
    ) -> Attempt:
        return Attempt(
            id=uuid4(),
            quiz_id=quiz_id,
            learner_id=learner_id,
            enrollment_id=enrollment_id,
            attempt_number=attempt_number,
            score=score,
            max_score=max_score,
            passed=passed,
            submitted_at=submitted_at,
            answers=answers,
        )

    @property
    def score_percent(self) -> Decimal:
        return percent_of(self.score, self.max_score)
