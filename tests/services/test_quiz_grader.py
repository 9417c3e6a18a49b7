from __future__ import annotations

from dataclasses import replace
from decimal import Decimal
from uuid import uuid4

import pytest
from prometheus_client import REGISTRY

from lms.models.enrollment import EnrollmentStatus
from lms.models.progress import ProgressState
from lms.models.quiz import QuizMode, QuizStatus
from lms.repos.registry import Repositories
from lms.services.engine import LearningEngine
from lms.services.errors import (
    AttemptConflictError,
    IncompleteSubmissionError,
    NotEligibleError,
    NotFoundError,
    OwnershipError,
    QuizNotActiveError,
    QuizValidationError,
    RetakeNotAllowedError,
)
from lms.services.quiz_grader import QuestionResponse
from tests.conftest import add_enrollment, build_course, build_quiz, option_id, run


def _answers(definition, *texts: str) -> list[QuestionResponse]:
    """One response per question, choosing the option with the given text."""
    return [
        QuestionResponse(q.question.id, (option_id(definition, i, text),))
        for i, (q, text) in enumerate(zip(definition.questions, texts))
    ]


def _rejections(code: str) -> float:
    value = REGISTRY.get_sample_value("quiz_submissions_rejected_total", {"reason": code})
    return value if value is not None else 0.0


async def _setup(repos: Repositories, **quiz_kwargs):
    course = await build_course(repos, (2,))
    enrollment = await add_enrollment(repos, uuid4(), course.id)
    quiz_kwargs.setdefault("lesson_id", course.lessons[0].id)
    definition = await build_quiz(repos, **quiz_kwargs)
    return course, enrollment, definition


def test_all_correct_passes(repos: Repositories, cache) -> None:
    async def scenario():
        _, enrollment, quiz = await _setup(repos, questions=2, passing_score=50)
        engine = LearningEngine(repos, cache=cache)

        result = await engine.on_quiz_submitted(
            quiz.quiz.id, enrollment.learner_id, enrollment.id, _answers(quiz, "right", "right")
        )
        assert result.attempt.score == 2
        assert result.attempt.max_score == 2
        assert result.attempt.passed is True
        assert result.attempt.attempt_number == 1
        assert result.score_percent == Decimal("100.00")
        assert result.message == "Passed with 100.00%"

    run(scenario())


def test_score_exactly_at_threshold_passes(repos: Repositories, cache) -> None:
    async def scenario():
        _, enrollment, quiz = await _setup(repos, questions=2, passing_score=50)
        result = await LearningEngine(repos, cache=cache).on_quiz_submitted(
            quiz.quiz.id, enrollment.learner_id, enrollment.id, _answers(quiz, "right", "wrong")
        )
        assert result.attempt.score == 1
        assert result.attempt.passed is True

    run(scenario())


def test_below_threshold_fails(repos: Repositories, cache) -> None:
    async def scenario():
        _, enrollment, quiz = await _setup(repos, questions=3, passing_score=70)
        result = await LearningEngine(repos, cache=cache).on_quiz_submitted(
            quiz.quiz.id,
            enrollment.learner_id,
            enrollment.id,
            _answers(quiz, "right", "right", "wrong"),
        )
        assert result.attempt.passed is False
        assert result.score_percent == Decimal("66.67")
        assert result.message == "Not passed: scored 66.67%"
        assert [r.is_correct for r in result.results] == [True, True, False]

    run(scenario())


def test_grading_is_deterministic(repos: Repositories, cache) -> None:
    async def scenario():
        _, enrollment, quiz = await _setup(repos, questions=3)
        engine = LearningEngine(repos, cache=cache)
        answers = _answers(quiz, "right", "wrong", "right")
        first = await engine.on_quiz_submitted(
            quiz.quiz.id, enrollment.learner_id, enrollment.id, answers
        )
        second = await engine.on_quiz_submitted(
            quiz.quiz.id, enrollment.learner_id, enrollment.id, answers
        )
        assert first.attempt.score == second.attempt.score
        assert first.attempt.passed == second.attempt.passed
        assert first.results == second.results
        assert (first.attempt.attempt_number, second.attempt.attempt_number) == (1, 2)

    run(scenario())


def test_selecting_both_options_scores_nothing(repos: Repositories, cache) -> None:
    async def scenario():
        _, enrollment, quiz = await _setup(repos, questions=1)
        question = quiz.questions[0]
        both = tuple(o.id for o in question.options)
        result = await LearningEngine(repos, cache=cache).on_quiz_submitted(
            quiz.quiz.id,
            enrollment.learner_id,
            enrollment.id,
            [QuestionResponse(question.question.id, both)],
        )
        assert result.attempt.score == 0
        assert result.results[0].is_correct is False

    run(scenario())


def test_unknown_questions_and_options_are_ignored(repos: Repositories, cache) -> None:
    async def scenario():
        _, enrollment, quiz = await _setup(repos, questions=1)
        responses = _answers(quiz, "right") + [QuestionResponse(uuid4(), (uuid4(),))]
        result = await LearningEngine(repos, cache=cache).on_quiz_submitted(
            quiz.quiz.id, enrollment.learner_id, enrollment.id, responses
        )
        assert result.attempt.score == 1
        assert len(result.attempt.answers) == 1

    run(scenario())


def test_missing_required_answer_is_rejected_without_writing(
    repos: Repositories, cache
) -> None:
    async def scenario():
        _, enrollment, quiz = await _setup(repos, questions=2)
        before = _rejections("incomplete_submission")
        with pytest.raises(IncompleteSubmissionError) as excinfo:
            await LearningEngine(repos, cache=cache).on_quiz_submitted(
                quiz.quiz.id, enrollment.learner_id, enrollment.id, _answers(quiz, "right")
            )
        assert excinfo.value.question_ids == [str(quiz.questions[1].question.id)]
        assert await repos.attempts.count(quiz.quiz.id, enrollment.learner_id, enrollment.id) == 0
        assert _rejections("incomplete_submission") - before == 1

    run(scenario())


def test_option_from_another_question_does_not_count_as_answer(
    repos: Repositories, cache
) -> None:
    async def scenario():
        _, enrollment, quiz = await _setup(repos, questions=2)
        stray = QuestionResponse(
            quiz.questions[1].question.id, (option_id(quiz, 0, "right"),)
        )
        with pytest.raises(IncompleteSubmissionError):
            await LearningEngine(repos, cache=cache).on_quiz_submitted(
                quiz.quiz.id,
                enrollment.learner_id,
                enrollment.id,
                _answers(quiz, "right")[:1] + [stray],
            )

    run(scenario())


def test_inactive_quiz_is_rejected(repos: Repositories, cache) -> None:
    async def scenario():
        _, enrollment, quiz = await _setup(repos, status=QuizStatus.DRAFT)
        with pytest.raises(QuizNotActiveError):
            await LearningEngine(repos, cache=cache).on_quiz_submitted(
                quiz.quiz.id,
                enrollment.learner_id,
                enrollment.id,
                _answers(quiz, "right", "right"),
            )

    run(scenario())


def test_max_attempts_is_enforced(repos: Repositories, cache) -> None:
    async def scenario():
        _, enrollment, quiz = await _setup(repos, max_attempts=2)
        engine = LearningEngine(repos, cache=cache)
        answers = _answers(quiz, "wrong", "wrong")
        for _ in range(2):
            await engine.on_quiz_submitted(
                quiz.quiz.id, enrollment.learner_id, enrollment.id, answers
            )
        with pytest.raises(NotEligibleError):
            await engine.on_quiz_submitted(
                quiz.quiz.id, enrollment.learner_id, enrollment.id, answers
            )
        assert await repos.attempts.count(quiz.quiz.id, enrollment.learner_id, enrollment.id) == 2

    run(scenario())


def test_retake_not_allowed(repos: Repositories, cache) -> None:
    async def scenario():
        _, enrollment, quiz = await _setup(repos, allow_retakes=False)
        engine = LearningEngine(repos, cache=cache)
        answers = _answers(quiz, "wrong", "wrong")
        await engine.on_quiz_submitted(quiz.quiz.id, enrollment.learner_id, enrollment.id, answers)
        with pytest.raises(RetakeNotAllowedError):
            await engine.on_quiz_submitted(
                quiz.quiz.id, enrollment.learner_id, enrollment.id, answers
            )

    run(scenario())


def test_exhausted_attempts_reported_before_retake_rule(repos: Repositories, cache) -> None:
    async def scenario():
        _, enrollment, quiz = await _setup(repos, max_attempts=1, allow_retakes=False)
        engine = LearningEngine(repos, cache=cache)
        answers = _answers(quiz, "wrong", "wrong")
        await engine.on_quiz_submitted(quiz.quiz.id, enrollment.learner_id, enrollment.id, answers)
        with pytest.raises(NotEligibleError):
            await engine.on_quiz_submitted(
                quiz.quiz.id, enrollment.learner_id, enrollment.id, answers
            )

    run(scenario())


def test_validation_order_quiz_then_enrollment_then_activation(
    repos: Repositories, cache
) -> None:
    async def scenario():
        _, enrollment, quiz = await _setup(repos, status=QuizStatus.DRAFT)
        engine = LearningEngine(repos, cache=cache)

        with pytest.raises(NotFoundError, match="quiz"):
            await engine.on_quiz_submitted(uuid4(), enrollment.learner_id, uuid4(), [])
        with pytest.raises(NotFoundError, match="enrollment"):
            await engine.on_quiz_submitted(quiz.quiz.id, enrollment.learner_id, uuid4(), [])
        with pytest.raises(OwnershipError):
            await engine.on_quiz_submitted(quiz.quiz.id, uuid4(), enrollment.id, [])
        # Activation is checked before required answers.
        with pytest.raises(QuizNotActiveError):
            await engine.on_quiz_submitted(
                quiz.quiz.id, enrollment.learner_id, enrollment.id, []
            )

    run(scenario())


def test_quiz_from_another_course_is_not_found(repos: Repositories, cache) -> None:
    async def scenario():
        _, enrollment, _ = await _setup(repos)
        other = await build_course(repos, (1,))
        foreign = await build_quiz(repos, course_id=other.id)
        with pytest.raises(NotFoundError):
            await LearningEngine(repos, cache=cache).on_quiz_submitted(
                foreign.quiz.id,
                enrollment.learner_id,
                enrollment.id,
                _answers(foreign, "right", "right"),
            )

    run(scenario())


def test_attempts_are_counted_per_enrollment(repos: Repositories, cache) -> None:
    async def scenario():
        course, old, quiz = await _setup(repos, max_attempts=1)
        engine = LearningEngine(repos, cache=cache)
        answers = _answers(quiz, "wrong", "wrong")
        await engine.on_quiz_submitted(quiz.quiz.id, old.learner_id, old.id, answers)

        await repos.enrollments.retire(old.id, 50)
        new = await add_enrollment(repos, old.learner_id, course.id)
        result = await engine.on_quiz_submitted(quiz.quiz.id, new.learner_id, new.id, answers)
        assert result.attempt.attempt_number == 1

    run(scenario())


def test_duplicate_attempt_number_is_a_conflict(repos: Repositories, cache) -> None:
    class _StaleCountRepo:
        """Reports no prior attempts, as a concurrent reader would."""

        def __init__(self, inner) -> None:
            self._inner = inner

        def __getattr__(self, name):
            return getattr(self._inner, name)

        async def count(self, *args) -> int:
            return 0

    async def scenario():
        _, enrollment, quiz = await _setup(repos)
        engine = LearningEngine(repos, cache=cache)
        answers = _answers(quiz, "right", "right")
        await engine.on_quiz_submitted(quiz.quiz.id, enrollment.learner_id, enrollment.id, answers)

        stale = LearningEngine(replace(repos, attempts=_StaleCountRepo(repos.attempts)))
        with pytest.raises(AttemptConflictError):
            await stale.on_quiz_submitted(
                quiz.quiz.id, enrollment.learner_id, enrollment.id, answers
            )

    run(scenario())


def test_passing_lesson_quiz_completes_lesson(repos: Repositories, cache) -> None:
    async def scenario():
        course, enrollment, quiz = await _setup(repos)
        lesson_id = course.lessons[0].id
        await LearningEngine(repos, cache=cache).on_quiz_submitted(
            quiz.quiz.id, enrollment.learner_id, enrollment.id, _answers(quiz, "right", "right")
        )
        progress = await repos.progress.get(enrollment.learner_id, lesson_id, enrollment.id)
        assert progress.state is ProgressState.COMPLETED
        stored = await repos.enrollments.get(enrollment.id)
        assert stored.percentage == Decimal("50.00")
        assert stored.status is EnrollmentStatus.IN_PROGRESS

    run(scenario())


def test_failing_lesson_quiz_leaves_progress_alone(repos: Repositories, cache) -> None:
    async def scenario():
        course, enrollment, quiz = await _setup(repos)
        await LearningEngine(repos, cache=cache).on_quiz_submitted(
            quiz.quiz.id, enrollment.learner_id, enrollment.id, _answers(quiz, "wrong", "wrong")
        )
        progress = await repos.progress.get(
            enrollment.learner_id, course.lessons[0].id, enrollment.id
        )
        assert progress is None
        assert (await repos.enrollments.get(enrollment.id)).percentage == Decimal("0")

    run(scenario())


def test_passing_course_quiz_does_not_touch_progress(repos: Repositories, cache) -> None:
    async def scenario():
        course = await build_course(repos, (2,))
        enrollment = await add_enrollment(repos, uuid4(), course.id)
        quiz = await build_quiz(repos, course_id=course.id)
        result = await LearningEngine(repos, cache=cache).on_quiz_submitted(
            quiz.quiz.id, enrollment.learner_id, enrollment.id, _answers(quiz, "right", "right")
        )
        assert result.attempt.passed is True
        assert await repos.progress.list_for_enrollment(enrollment.id) == []

    run(scenario())


def test_training_mode_includes_explanations(repos: Repositories, cache) -> None:
    async def scenario():
        _, enrollment, quiz = await _setup(repos, mode=QuizMode.TRAINING)
        result = await LearningEngine(repos, cache=cache).on_quiz_submitted(
            quiz.quiz.id, enrollment.learner_id, enrollment.id, _answers(quiz, "right", "wrong")
        )
        assert result.mode is QuizMode.TRAINING
        assert [r.explanation for r in result.results] == [
            "Because of reason 1.",
            "Because of reason 2.",
        ]

    run(scenario())


def test_standard_mode_withholds_explanations(repos: Repositories, cache) -> None:
    async def scenario():
        _, enrollment, quiz = await _setup(repos, mode=QuizMode.STANDARD)
        result = await LearningEngine(repos, cache=cache).on_quiz_submitted(
            quiz.quiz.id, enrollment.learner_id, enrollment.id, _answers(quiz, "right", "wrong")
        )
        assert all(r.explanation is None for r in result.results)

    run(scenario())


def test_activate_valid_quiz(repos: Repositories, cache) -> None:
    async def scenario():
        _, _, quiz = await _setup(repos, status=QuizStatus.DRAFT)
        engine = LearningEngine(repos, cache=cache)
        activated = await engine.grader.activate_quiz(quiz.quiz.id)
        assert activated.quiz.status is QuizStatus.ACTIVE
        again = await engine.grader.activate_quiz(quiz.quiz.id)
        assert again.quiz.status is QuizStatus.ACTIVE

    run(scenario())


def test_activate_rejects_question_with_two_correct_options(
    repos: Repositories, cache
) -> None:
    async def scenario():
        _, _, quiz = await _setup(repos, status=QuizStatus.DRAFT, correct_per_question=2)
        with pytest.raises(QuizValidationError, match="2 correct options"):
            await LearningEngine(repos, cache=cache).grader.activate_quiz(quiz.quiz.id)
        stored = await repos.quizzes.get_definition(quiz.quiz.id)
        assert stored.quiz.status is QuizStatus.DRAFT

    run(scenario())


def test_activate_rejects_question_without_correct_option(repos: Repositories, cache) -> None:
    async def scenario():
        _, _, quiz = await _setup(repos, status=QuizStatus.DRAFT, correct_per_question=0)
        with pytest.raises(QuizValidationError, match="0 correct options"):
            await LearningEngine(repos, cache=cache).grader.activate_quiz(quiz.quiz.id)

    run(scenario())


def test_activate_rejects_empty_quiz(repos: Repositories, cache) -> None:
    async def scenario():
        _, _, quiz = await _setup(repos, status=QuizStatus.DRAFT, questions=0)
        with pytest.raises(QuizValidationError, match="no questions"):
            await LearningEngine(repos, cache=cache).grader.activate_quiz(quiz.quiz.id)

    run(scenario())


def test_activate_unknown_quiz(repos: Repositories, cache) -> None:
    with pytest.raises(NotFoundError):
        run(LearningEngine(repos, cache=cache).grader.activate_quiz(uuid4()))
