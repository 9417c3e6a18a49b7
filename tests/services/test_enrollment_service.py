from __future__ import annotations

from decimal import Decimal
from uuid import uuid4

import pytest

from lms.models.enrollment import EnrollmentStatus
from lms.repos.registry import Repositories
from lms.services.engine import LearningEngine
from lms.services.errors import NotFoundError
from lms.services.seed import SAMPLE_COURSE_ID, SAMPLE_QUIZ_ID, seed_sample_course
from tests.conftest import build_course, run


def test_enroll_creates_fresh_enrollment(repos: Repositories, cache) -> None:
    async def scenario():
        course = await build_course(repos, (2,))
        learner = uuid4()
        enrollment = await LearningEngine(repos, cache=cache).enrollments.enroll(
            learner, course.id
        )
        assert enrollment.learner_id == learner
        assert enrollment.status is EnrollmentStatus.NOT_STARTED
        assert enrollment.percentage == Decimal("0")
        assert await repos.enrollments.get_active(learner, course.id) == enrollment

    run(scenario())


def test_enroll_twice_returns_existing(repos: Repositories, cache) -> None:
    async def scenario():
        course = await build_course(repos, (2,))
        service = LearningEngine(repos, cache=cache).enrollments
        learner = uuid4()
        first = await service.enroll(learner, course.id)
        second = await service.enroll(learner, course.id)
        assert second.id == first.id

    run(scenario())


def test_reenrolling_after_completion_starts_over(repos: Repositories, cache) -> None:
    async def scenario():
        course = await build_course(repos, (1,))
        engine = LearningEngine(repos, cache=cache)
        learner = uuid4()
        first = await engine.enrollments.enroll(learner, course.id)
        await engine.on_lesson_completed(learner, course.lessons[0].id, first.id)

        second = await engine.enrollments.enroll(learner, course.id)
        assert second.id != first.id
        assert second.percentage == Decimal("0")
        retired = await repos.enrollments.get(first.id)
        assert retired.retired_at is not None
        assert retired.status is EnrollmentStatus.COMPLETED
        assert retired.percentage == Decimal("100.00")

    run(scenario())


def test_enroll_in_unknown_course(repos: Repositories, cache) -> None:
    with pytest.raises(NotFoundError):
        run(LearningEngine(repos, cache=cache).enrollments.enroll(uuid4(), uuid4()))


def test_seed_is_idempotent(repos: Repositories) -> None:
    async def scenario():
        assert await seed_sample_course(repos) is True
        assert await seed_sample_course(repos) is False
        lesson_ids = await repos.catalog.lesson_ids_by_course([SAMPLE_COURSE_ID])
        assert len(lesson_ids[SAMPLE_COURSE_ID]) == 4
        quiz = await repos.quizzes.get_definition(SAMPLE_QUIZ_ID)
        assert quiz.quiz.is_active

    run(scenario())
