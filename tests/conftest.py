from __future__ import annotations

import asyncio
import sys
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient

# Ensure repo root is on sys.path so `import lms` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from lms.api.dependencies import memory_repositories  # noqa: E402
from lms.main import app  # noqa: E402
from lms.models.course import Course, CourseModule, Lesson  # noqa: E402
from lms.models.enrollment import Enrollment  # noqa: E402
from lms.models.quiz import (  # noqa: E402
    AnswerOption,
    Question,
    QuestionDefinition,
    Quiz,
    QuizDefinition,
    QuizMode,
    QuizStatus,
)
from lms.repos.registry import Repositories, in_memory_repositories  # noqa: E402
from lms.services import token_service  # noqa: E402
from lms.services.cache import InMemoryCacheService, cache_service  # noqa: E402


@pytest.fixture(autouse=True)
def reset_memory_repositories() -> None:
    """Clear the process-wide in-memory repositories between tests."""
    repos = memory_repositories
    repos.catalog._courses.clear()  # type: ignore[attr-defined]
    repos.catalog._modules.clear()  # type: ignore[attr-defined]
    repos.catalog._lessons.clear()  # type: ignore[attr-defined]
    repos.enrollments._by_id.clear()  # type: ignore[attr-defined]
    repos.progress._store.clear()  # type: ignore[attr-defined]
    repos.progress._orphans.clear()  # type: ignore[attr-defined]
    repos.quizzes._by_id.clear()  # type: ignore[attr-defined]
    repos.attempts._by_scope.clear()  # type: ignore[attr-defined]
    repos.attempts._by_id.clear()  # type: ignore[attr-defined]


@pytest.fixture(autouse=True)
def reset_cache() -> None:
    """Clear cache between tests."""
    if hasattr(cache_service, "_store"):
        cache_service._store.clear()  # type: ignore[union-attr]


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


@pytest.fixture
def repos() -> Repositories:
    """Fresh repositories for service-level tests."""
    return in_memory_repositories()


@pytest.fixture
def cache() -> InMemoryCacheService:
    return InMemoryCacheService()


def mint_token(
    username: str = "test-user",
    roles: list[str] | None = None,
) -> str:
    """Create a valid ES256 JWT for testing."""
    return token_service.create_access_token(sub=username, roles=roles)


def auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def learner_id() -> UUID:
    return uuid4()


@pytest.fixture
def learner_token(learner_id: UUID) -> str:
    return mint_token(username=str(learner_id))


@pytest.fixture
def admin_token() -> str:
    """Token with admin role."""
    return mint_token(username="test-admin", roles=["admin"])


# ---------------------------------------------------------------------------
# Catalog builders
# ---------------------------------------------------------------------------


@dataclass
class SampleCourse:
    course: Course
    modules: list[CourseModule]
    lessons: list[Lesson]

    @property
    def id(self) -> UUID:
        return self.course.id


async def build_course(
    repos: Repositories,
    lessons_per_module: tuple[int, ...] = (2, 2),
    *,
    title: str = "Sample course",
) -> SampleCourse:
    """A course whose modules hold the given number of lessons each."""
    course = Course.new(slug=f"course-{uuid4().hex[:8]}", title=title, status="published")
    await repos.catalog.add_course(course)
    modules: list[CourseModule] = []
    lessons: list[Lesson] = []
    for m, count in enumerate(lessons_per_module):
        module = CourseModule.new(course_id=course.id, name=f"Module {m + 1}")
        await repos.catalog.add_module(module)
        modules.append(module)
        for n in range(count):
            lesson = Lesson.new(module_id=module.id, name=f"Lesson {m + 1}.{n + 1}")
            await repos.catalog.add_lesson(lesson)
            lessons.append(lesson)
    return SampleCourse(course=course, modules=modules, lessons=lessons)


async def add_enrollment(repos: Repositories, learner_id: UUID, course_id: UUID) -> Enrollment:
    enrollment = Enrollment.new(learner_id=learner_id, course_id=course_id, enrolled_at=1)
    await repos.enrollments.add(enrollment)
    return enrollment


async def build_quiz(
    repos: Repositories,
    *,
    lesson_id: UUID | None = None,
    course_id: UUID | None = None,
    questions: int = 2,
    points: int = 1,
    passing_score: int = 50,
    max_attempts: int = 0,
    allow_retakes: bool = True,
    mode: QuizMode = QuizMode.STANDARD,
    status: QuizStatus = QuizStatus.ACTIVE,
    correct_per_question: int = 1,
) -> QuizDefinition:
    """A quiz where every question has options "right" and "wrong"."""
    quiz = Quiz.new(
        name="Check your understanding",
        passing_score=Decimal(passing_score),
        lesson_id=lesson_id,
        course_id=course_id,
        max_attempts=max_attempts,
        allow_retakes=allow_retakes,
        mode=mode,
        status=status,
    )
    defs = []
    for i in range(questions):
        question = Question.new(
            quiz_id=quiz.id,
            name=f"Q{i + 1}",
            text=f"Question {i + 1}?",
            points=points,
            explanation=f"Because of reason {i + 1}.",
        )
        options = [
            AnswerOption.new(
                question_id=question.id, text="right", is_correct=correct_per_question >= 1
            ),
            AnswerOption.new(
                question_id=question.id, text="wrong", is_correct=correct_per_question >= 2
            ),
        ]
        defs.append(QuestionDefinition(question=question, options=tuple(options)))
    definition = QuizDefinition(quiz=quiz, questions=tuple(defs))
    await repos.quizzes.add_definition(definition)
    return await repos.quizzes.get_definition(quiz.id)


def option_id(definition: QuizDefinition, question_index: int, text: str) -> UUID:
    question = definition.questions[question_index]
    return next(o.id for o in question.options if o.text == text)


def run(coro):
    """Run a coroutine to completion from a sync test."""
    return asyncio.run(coro)


@pytest.fixture
def enrolled(learner_id: UUID) -> tuple[SampleCourse, Enrollment]:
    """A two-module, four-lesson course in the app's repositories, with the
    test learner enrolled."""
    course = run(build_course(memory_repositories))
    enrollment = run(add_enrollment(memory_repositories, learner_id, course.id))
    return course, enrollment
