from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid4


class QuizMode(str, Enum):
    STANDARD = "standard"
    TRAINING = "training"  # explanations revealed once an answer is chosen


class QuizStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    ARCHIVED = "archived"


@dataclass(frozen=True, slots=True)
class Quiz:
    """Quiz header.  Scoped to a lesson or to a course, never both."""

    id: UUID
    name: str
    passing_score: Decimal  # percent, 0-100
    lesson_id: UUID | None = None
    course_id: UUID | None = None
    max_attempts: int = 0  # 0 = unlimited
    allow_retakes: bool = True
    mode: QuizMode = QuizMode.STANDARD
    status: QuizStatus = QuizStatus.DRAFT

    def __post_init__(self) -> None:
        if (self.lesson_id is None) == (self.course_id is None):
            raise ValueError("quiz must be scoped to exactly one of lesson or course")
        if not Decimal(0) <= self.passing_score <= Decimal(100):
            raise ValueError("passing_score must be between 0 and 100")
        if self.max_attempts < 0:
            raise ValueError("max_attempts must be >= 0")

    @staticmethod
    def new(
        *,
        name: str,
        passing_score: Decimal | int,
        lesson_id: UUID | None = None,
        course_id: UUID | None = None,
        max_attempts: int = 0,
        allow_retakes: bool = True,
        mode: QuizMode = QuizMode.STANDARD,
        status: QuizStatus = QuizStatus.DRAFT,
    ) -> Quiz:
        return Quiz(
            id=uuid4(),
            name=name,
            passing_score=Decimal(passing_score),
            lesson_id=lesson_id,
            course_id=course_id,
            max_attempts=max_attempts,
            allow_retakes=allow_retakes,
            mode=mode,
            status=status,
        )

    @property
    def is_lesson_scoped(self) -> bool:
        return self.lesson_id is not None

    @property
    def is_active(self) -> bool:
        return self.status is QuizStatus.ACTIVE


@dataclass(frozen=True, slots=True)
class Question:
    id: UUID
    quiz_id: UUID
    name: str
    text: str
    points: int = 1
    required: bool = True
    explanation: str | None = None

    @staticmethod
    def new(
        *,
        quiz_id: UUID,
        name: str,
        text: str,
        points: int = 1,
        required: bool = True,
        explanation: str | None = None,
    ) -> Question:
        return Question(
            id=uuid4(),
            quiz_id=quiz_id,
            name=name,
            text=text,
            points=points,
            required=required,
            explanation=explanation,
        )


@dataclass(frozen=True, slots=True)
class AnswerOption:
    id: UUID
    question_id: UUID
    text: str
    is_correct: bool = False

    @staticmethod
    def new(*, question_id: UUID, text: str, is_correct: bool = False) -> AnswerOption:
        return AnswerOption(
            id=uuid4(), question_id=question_id, text=text, is_correct=is_correct
        )


@dataclass(frozen=True, slots=True)
class QuestionDefinition:
    question: Question
    options: tuple[AnswerOption, ...]

    @property
    def correct_option_ids(self) -> frozenset[UUID]:
        return frozenset(o.id for o in self.options if o.is_correct)

    @property
    def option_ids(self) -> frozenset[UUID]:
        return frozenset(o.id for o in self.options)


@dataclass(frozen=True, slots=True)
class QuizDefinition:
    """A quiz with its questions and options, loaded in one read."""

    quiz: Quiz
    questions: tuple[QuestionDefinition, ...]

    @property
    def max_score(self) -> int:
        return sum(q.question.points for q in self.questions)

    def question(self, question_id: UUID) -> QuestionDefinition | None:
        for q in self.questions:
            if q.question.id == question_id:
                return q
        return None
