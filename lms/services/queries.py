"""Read-only queries for the learner UI and outside collaborators.

Nothing here writes.  Every Progress and Attempt lookup is scoped by
enrollment, never by learner alone.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from lms.core.config import SETTINGS
from lms.core.metrics import CACHE_OPERATIONS
from lms.models.attempt import Attempt
from lms.models.enrollment import Enrollment, EnrollmentStatus
from lms.models.quiz import Quiz
from lms.repos.registry import Repositories
from lms.services.cache import CacheService, cache_service, enrollment_status_key
from lms.services.errors import NotFoundError, OwnershipError
from lms.services.quiz_grader import eligibility_error, quiz_in_course

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class EnrollmentStatusView:
    enrollment_id: UUID
    learner_id: UUID
    course_id: UUID
    status: EnrollmentStatus
    percentage: Decimal
    completed_at: int | None

    def to_json(self) -> str:
        return json.dumps(
            {
                "enrollment_id": str(self.enrollment_id),
                "learner_id": str(self.learner_id),
                "course_id": str(self.course_id),
                "status": self.status.value,
                "percentage": str(self.percentage),
                "completed_at": self.completed_at,
            }
        )

    @staticmethod
    def from_json(raw: str) -> EnrollmentStatusView:
        data = json.loads(raw)
        return EnrollmentStatusView(
            enrollment_id=UUID(data["enrollment_id"]),
            learner_id=UUID(data["learner_id"]),
            course_id=UUID(data["course_id"]),
            status=EnrollmentStatus(data["status"]),
            percentage=Decimal(data["percentage"]),
            completed_at=data["completed_at"],
        )

    @staticmethod
    def of(enrollment: Enrollment) -> EnrollmentStatusView:
        return EnrollmentStatusView(
            enrollment_id=enrollment.id,
            learner_id=enrollment.learner_id,
            course_id=enrollment.course_id,
            status=enrollment.status,
            percentage=enrollment.percentage,
            completed_at=enrollment.completed_at,
        )


@dataclass(frozen=True, slots=True)
class EnrollmentSummary:
    enrollment: Enrollment
    course_title: str


@dataclass(frozen=True, slots=True)
class PlayerOption:
    id: UUID
    text: str


@dataclass(frozen=True, slots=True)
class PlayerQuestion:
    """A question as shown while taking the quiz: no correctness flags."""

    id: UUID
    name: str
    text: str
    points: int
    required: bool
    options: tuple[PlayerOption, ...]


@dataclass(frozen=True, slots=True)
class QuizContext:
    quiz: Quiz
    questions: tuple[PlayerQuestion, ...]
    max_score: int
    attempt_count: int
    latest_attempt: Attempt | None
    can_take: bool
    remaining_attempts: int | None  # None = unlimited
    blocked_reason: str | None = None


@dataclass(frozen=True, slots=True)
class ReviewOption:
    id: UUID
    text: str
    selected: bool
    correct: bool


@dataclass(frozen=True, slots=True)
class ReviewQuestion:
    id: UUID
    name: str
    text: str
    points: int
    points_awarded: int
    is_correct: bool
    explanation: str | None
    options: tuple[ReviewOption, ...]


@dataclass(frozen=True, slots=True)
class AttemptReview:
    attempt: Attempt
    quiz: Quiz
    questions: tuple[ReviewQuestion, ...]


class EngineQueries:
    def __init__(
        self,
        repos: Repositories,
        *,
        cache: CacheService | None = None,
        cache_ttl: int = SETTINGS.enrollment_status_cache_ttl,
    ) -> None:
        self._repos = repos
        self._cache = cache if cache is not None else cache_service
        self._cache_ttl = cache_ttl

    async def get_enrollment_status(self, enrollment_id: UUID) -> EnrollmentStatusView:
        """Read-through cached; the aggregator invalidates on every write."""
        key = enrollment_status_key(enrollment_id)
        cached = await self._cache.get(key)
        if cached is not None:
            CACHE_OPERATIONS.labels(operation="hit").inc()
            return EnrollmentStatusView.from_json(cached)

        CACHE_OPERATIONS.labels(operation="miss").inc()
        enrollment = await self._repos.enrollments.get(enrollment_id)
        if enrollment is None:
            raise NotFoundError(f"enrollment {enrollment_id} not found")
        view = EnrollmentStatusView.of(enrollment)
        await self._cache.set(key, view.to_json(), self._cache_ttl)
        return view

    async def list_enrollments(self, learner_id: UUID) -> list[EnrollmentSummary]:
        """Active enrollments first, then by course title."""
        enrollments = await self._repos.enrollments.list_by_learner(learner_id)
        summaries = []
        for enrollment in enrollments:
            course = await self._repos.catalog.get_course(enrollment.course_id)
            title = course.title if course is not None else ""
            summaries.append(EnrollmentSummary(enrollment=enrollment, course_title=title))
        summaries.sort(
            key=lambda s: (
                not s.enrollment.is_active,
                s.course_title.casefold(),
                -s.enrollment.enrolled_at,
            )
        )
        return summaries

    async def get_attempt_history(
        self, quiz_id: UUID, learner_id: UUID, enrollment_id: UUID
    ) -> list[Attempt]:
        await self._owned_enrollment(learner_id, enrollment_id)
        return await self._repos.attempts.history(quiz_id, learner_id, enrollment_id)

    async def get_latest_attempt(
        self, quiz_id: UUID, learner_id: UUID, enrollment_id: UUID
    ) -> Attempt | None:
        await self._owned_enrollment(learner_id, enrollment_id)
        return await self._repos.attempts.latest(quiz_id, learner_id, enrollment_id)

    async def get_quiz_context(
        self, quiz_id: UUID, learner_id: UUID, enrollment_id: UUID
    ) -> QuizContext:
        definition = await self._repos.quizzes.get_definition(quiz_id)
        if definition is None:
            raise NotFoundError(f"quiz {quiz_id} not found")
        enrollment = await self._owned_enrollment(learner_id, enrollment_id)
        if not await quiz_in_course(self._repos, definition.quiz, enrollment.course_id):
            raise NotFoundError(f"quiz {quiz_id} is not part of this enrollment's course")

        quiz = definition.quiz
        count = await self._repos.attempts.count(quiz_id, learner_id, enrollment_id)
        latest = await self._repos.attempts.latest(quiz_id, learner_id, enrollment_id)
        blocked = eligibility_error(quiz, count)

        if quiz.max_attempts == 0:
            remaining = None if quiz.allow_retakes else max(0, 1 - count)
        else:
            remaining = max(0, quiz.max_attempts - count)
            if not quiz.allow_retakes:
                remaining = min(remaining, max(0, 1 - count))

        questions = tuple(
            PlayerQuestion(
                id=q.question.id,
                name=q.question.name,
                text=q.question.text,
                points=q.question.points,
                required=q.question.required,
                options=tuple(PlayerOption(id=o.id, text=o.text) for o in q.options),
            )
            for q in definition.questions
        )
        return QuizContext(
            quiz=quiz,
            questions=questions,
            max_score=definition.max_score,
            attempt_count=count,
            latest_attempt=latest,
            can_take=blocked is None,
            remaining_attempts=remaining,
            blocked_reason=blocked.code if blocked is not None else None,
        )

    async def get_attempt_detail(self, attempt_id: UUID, learner_id: UUID) -> AttemptReview:
        """Full review of one attempt, including which options were correct.
        Only the learner who submitted it may see it."""
        attempt = await self._repos.attempts.get(attempt_id)
        if attempt is None:
            raise NotFoundError(f"attempt {attempt_id} not found")
        if attempt.learner_id != learner_id:
            raise OwnershipError("attempt belongs to another learner")
        definition = await self._repos.quizzes.get_definition(attempt.quiz_id)
        if definition is None:
            raise NotFoundError(f"quiz {attempt.quiz_id} not found")

        answers = {a.question_id: a for a in attempt.answers}
        questions = []
        for q in definition.questions:
            answer = answers.get(q.question.id)
            selected = set(answer.selected_option_ids) if answer is not None else set()
            questions.append(
                ReviewQuestion(
                    id=q.question.id,
                    name=q.question.name,
                    text=q.question.text,
                    points=q.question.points,
                    points_awarded=answer.points_awarded if answer is not None else 0,
                    is_correct=answer.is_correct if answer is not None else False,
                    explanation=q.question.explanation,
                    options=tuple(
                        ReviewOption(
                            id=o.id,
                            text=o.text,
                            selected=o.id in selected,
                            correct=o.is_correct,
                        )
                        for o in q.options
                    ),
                )
            )
        return AttemptReview(attempt=attempt, quiz=definition.quiz, questions=tuple(questions))

    async def is_module_completed(self, enrollment_id: UUID, module_id: UUID) -> bool:
        """True when every lesson of the module is completed in this
        enrollment.  An empty module is never complete."""
        enrollment = await self._repos.enrollments.get(enrollment_id)
        if enrollment is None:
            raise NotFoundError(f"enrollment {enrollment_id} not found")
        module = await self._repos.catalog.get_module(module_id)
        if module is None or module.course_id != enrollment.course_id:
            raise NotFoundError(f"module {module_id} not found in this course")
        lessons = await self._repos.catalog.lessons_for_module(module_id)
        if not lessons:
            return False
        completed = await self._repos.progress.completed_lesson_ids([enrollment_id])
        done = completed.get(enrollment_id, frozenset())
        return all(lesson.id in done for lesson in lessons)

    async def _owned_enrollment(self, learner_id: UUID, enrollment_id: UUID) -> Enrollment:
        enrollment = await self._repos.enrollments.get(enrollment_id)
        if enrollment is None:
            raise NotFoundError(f"enrollment {enrollment_id} not found")
        if enrollment.learner_id != learner_id:
            raise OwnershipError("enrollment belongs to another learner")
        return enrollment
