"""Quiz grading and activation.

Grading validates everything (quiz, enrollment, activation, eligibility,
required answers) before the first write, then persists one immutable
Attempt.  A passed lesson-scoped quiz counts as completing that lesson.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from lms.core.clock import now_epoch
from lms.core.metrics import QUIZ_ATTEMPTS, QUIZ_REJECTIONS
from lms.models.attempt import Attempt, AttemptAnswer
from lms.models.enrollment import Enrollment
from lms.models.quiz import QuestionDefinition, Quiz, QuizDefinition, QuizMode, QuizStatus
from lms.repos.registry import Repositories
from lms.services.errors import (
    AttemptConflictError,
    EngineError,
    IncompleteSubmissionError,
    NotEligibleError,
    NotFoundError,
    OwnershipError,
    QuizNotActiveError,
    QuizValidationError,
    RetakeNotAllowedError,
)
from lms.services.progress_recorder import ProgressRecorder

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class QuestionResponse:
    question_id: UUID
    selected_option_ids: tuple[UUID, ...] = ()


@dataclass(frozen=True, slots=True)
class QuestionResult:
    """Per-question outcome.  Never names the correct option."""

    question_id: UUID
    is_correct: bool
    points_awarded: int
    explanation: str | None = None


@dataclass(frozen=True, slots=True)
class GradingResult:
    attempt: Attempt
    results: tuple[QuestionResult, ...]
    mode: QuizMode

    @property
    def score_percent(self) -> Decimal:
        return self.attempt.score_percent

    @property
    def message(self) -> str:
        return result_message(self.attempt)


def result_message(attempt: Attempt) -> str:
    if attempt.passed:
        return f"Passed with {attempt.score_percent}%"
    return f"Not passed: scored {attempt.score_percent}%"


def eligibility_error(quiz: Quiz, prior_attempts: int) -> EngineError | None:
    """The error a new submission would raise, or None if one is allowed."""
    if not quiz.is_active:
        return QuizNotActiveError(f"quiz {quiz.id} is not active")
    if quiz.max_attempts > 0 and prior_attempts >= quiz.max_attempts:
        return NotEligibleError(
            f"all {quiz.max_attempts} attempts have been used"
        )
    if not quiz.allow_retakes and prior_attempts > 0:
        return RetakeNotAllowedError("this quiz can only be taken once")
    return None


def _selections(
    definition: QuizDefinition, responses: Iterable[QuestionResponse]
) -> dict[UUID, frozenset[UUID]]:
    """Merge responses per question, keeping only options of that question.
    Responses for unknown questions are ignored."""
    merged: dict[UUID, set[UUID]] = {}
    for response in responses:
        question = definition.question(response.question_id)
        if question is None:
            continue
        valid = question.option_ids
        merged.setdefault(response.question_id, set()).update(
            o for o in response.selected_option_ids if o in valid
        )
    return {q: frozenset(opts) for q, opts in merged.items()}


def _score(question: QuestionDefinition, selected: frozenset[UUID]) -> AttemptAnswer:
    # Single-select: full points iff the selection is exactly the correct option.
    is_correct = bool(selected) and selected == question.correct_option_ids
    return AttemptAnswer(
        question_id=question.question.id,
        selected_option_ids=tuple(sorted(selected, key=str)),
        is_correct=is_correct,
        points_awarded=question.question.points if is_correct else 0,
    )


class QuizGrader:
    def __init__(
        self,
        repos: Repositories,
        recorder: ProgressRecorder,
        *,
        clock: Callable[[], int] = now_epoch,
    ) -> None:
        self._repos = repos
        self._recorder = recorder
        self._clock = clock

    async def grade(
        self,
        quiz_id: UUID,
        learner_id: UUID,
        enrollment_id: UUID,
        responses: Iterable[QuestionResponse],
    ) -> GradingResult:
        try:
            definition, enrollment, prior = await self._validate(
                quiz_id, learner_id, enrollment_id
            )
            selections = _selections(definition, responses)
            missing = [
                str(q.question.id)
                for q in definition.questions
                if q.question.required and not selections.get(q.question.id)
            ]
            if missing:
                raise IncompleteSubmissionError(
                    f"{len(missing)} required question(s) unanswered", missing
                )
        except EngineError as exc:
            QUIZ_REJECTIONS.labels(reason=exc.code).inc()
            logger.info(
                "Quiz submission rejected (%s)",
                exc.code,
                extra={"quiz_id": str(quiz_id), "enrollment_id": str(enrollment_id)},
            )
            raise

        quiz = definition.quiz
        answers = tuple(
            _score(q, selections.get(q.question.id, frozenset()))
            for q in definition.questions
        )
        score = sum(a.points_awarded for a in answers)
        max_score = definition.max_score
        passed = max_score > 0 and Decimal(score) * 100 / Decimal(max_score) >= quiz.passing_score

        attempt = Attempt.new(
            quiz_id=quiz.id,
            learner_id=learner_id,
            enrollment_id=enrollment.id,
            attempt_number=prior + 1,
            score=score,
            max_score=max_score,
            passed=passed,
            submitted_at=self._clock(),
            answers=answers,
        )
        try:
            await self._repos.attempts.add(attempt)
        except ValueError as exc:
            QUIZ_REJECTIONS.labels(reason=AttemptConflictError.code).inc()
            raise AttemptConflictError(
                "another submission for this quiz was recorded first"
            ) from exc

        QUIZ_ATTEMPTS.labels(passed="true" if passed else "false").inc()
        logger.info(
            "Quiz attempt %d graded: %d/%d (%s)",
            attempt.attempt_number,
            score,
            max_score,
            "passed" if passed else "not passed",
            extra={
                "quiz_id": str(quiz.id),
                "learner_id": str(learner_id),
                "enrollment_id": str(enrollment.id),
            },
        )

        if passed and quiz.is_lesson_scoped:
            await self._recorder.complete_lesson(learner_id, quiz.lesson_id, enrollment.id)

        include_explanations = quiz.mode is QuizMode.TRAINING
        results = tuple(
            QuestionResult(
                question_id=a.question_id,
                is_correct=a.is_correct,
                points_awarded=a.points_awarded,
                explanation=(
                    definition.question(a.question_id).question.explanation
                    if include_explanations
                    else None
                ),
            )
            for a in answers
        )
        return GradingResult(attempt=attempt, results=results, mode=quiz.mode)

    async def activate_quiz(self, quiz_id: UUID) -> QuizDefinition:
        definition = await self._repos.quizzes.get_definition(quiz_id)
        if definition is None:
            raise NotFoundError(f"quiz {quiz_id} not found")
        if definition.quiz.is_active:
            return definition

        problems = []
        if not definition.questions:
            problems.append("quiz has no questions")
        for q in definition.questions:
            correct = len(q.correct_option_ids)
            if correct != 1:
                problems.append(
                    f"question '{q.question.name}' has {correct} correct options, expected 1"
                )
        if problems:
            raise QuizValidationError("; ".join(problems))

        activated = await self._repos.quizzes.set_status(quiz_id, QuizStatus.ACTIVE)
        if activated is None:
            raise NotFoundError(f"quiz {quiz_id} not found")
        logger.info("Quiz %s activated", quiz_id, extra={"quiz_id": str(quiz_id)})
        return activated

    async def _validate(
        self, quiz_id: UUID, learner_id: UUID, enrollment_id: UUID
    ) -> tuple[QuizDefinition, Enrollment, int]:
        definition = await self._repos.quizzes.get_definition(quiz_id)
        if definition is None:
            raise NotFoundError(f"quiz {quiz_id} not found")
        enrollment = await self._repos.enrollments.get(enrollment_id)
        if enrollment is None:
            raise NotFoundError(f"enrollment {enrollment_id} not found")
        if enrollment.learner_id != learner_id:
            raise OwnershipError("enrollment belongs to another learner")
        if not await quiz_in_course(self._repos, definition.quiz, enrollment.course_id):
            raise NotFoundError(f"quiz {quiz_id} is not part of this enrollment's course")

        prior = await self._repos.attempts.count(quiz_id, learner_id, enrollment_id)
        error = eligibility_error(definition.quiz, prior)
        if error is not None:
            raise error
        return definition, enrollment, prior


async def quiz_in_course(repos: Repositories, quiz: Quiz, course_id: UUID) -> bool:
    if quiz.course_id is not None:
        return quiz.course_id == course_id
    return await repos.catalog.course_id_for_lesson(quiz.lesson_id) == course_id
