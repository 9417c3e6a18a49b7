"""LearningEngine: the inbound event surface.

Wires the recorder, aggregator and grader over one Repositories bundle so
that a single engine instance is one unit of work.
"""

from __future__ import annotations

from collections.abc import Iterable
from uuid import UUID

from lms.models.progress import LessonProgress
from lms.repos.registry import Repositories
from lms.services.aggregator import EnrollmentAggregator, RecalculationReport
from lms.services.cache import CacheService
from lms.services.enrollment_service import EnrollmentService
from lms.services.progress_recorder import ProgressRecorder
from lms.services.queries import EngineQueries
from lms.services.quiz_grader import GradingResult, QuestionResponse, QuizGrader


class LearningEngine:
    def __init__(self, repos: Repositories, *, cache: CacheService | None = None) -> None:
        self.repos = repos
        self.aggregator = EnrollmentAggregator(repos, cache=cache)
        self.recorder = ProgressRecorder(repos, self.aggregator)
        self.grader = QuizGrader(repos, self.recorder)
        self.enrollments = EnrollmentService(repos)
        self.queries = EngineQueries(repos, cache=cache)

    async def on_lesson_started(
        self, learner_id: UUID, lesson_id: UUID, enrollment_id: UUID
    ) -> LessonProgress:
        return await self.recorder.start_lesson(learner_id, lesson_id, enrollment_id)

    async def on_lesson_completed(
        self, learner_id: UUID, lesson_id: UUID, enrollment_id: UUID
    ) -> LessonProgress:
        return await self.recorder.complete_lesson(learner_id, lesson_id, enrollment_id)

    async def on_quiz_submitted(
        self,
        quiz_id: UUID,
        learner_id: UUID,
        enrollment_id: UUID,
        responses: Iterable[QuestionResponse],
    ) -> GradingResult:
        return await self.grader.grade(quiz_id, learner_id, enrollment_id, responses)

    async def recalculate_many(self, enrollment_ids: Iterable[UUID]) -> RecalculationReport:
        return await self.aggregator.recalculate_many(enrollment_ids)
