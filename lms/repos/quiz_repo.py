from __future__ import annotations

from dataclasses import replace
from typing import Protocol
from uuid import UUID

from lms.models.course import sort_by_name
from lms.models.quiz import QuestionDefinition, QuizDefinition, QuizStatus


class QuizRepo(Protocol):
    async def get_definition(self, quiz_id: UUID) -> QuizDefinition | None: ...
    async def set_status(
        self, quiz_id: UUID, status: QuizStatus
    ) -> QuizDefinition | None: ...


def _ordered(definition: QuizDefinition) -> QuizDefinition:
    """Questions by name, options by text, whatever order they arrived in."""
    by_id = {qd.question.id: qd for qd in definition.questions}
    questions = []
    for question in sort_by_name(by_id[i].question for i in by_id):
        options = sorted(
            by_id[question.id].options, key=lambda o: (o.text.casefold(), str(o.id))
        )
        questions.append(QuestionDefinition(question=question, options=tuple(options)))
    return QuizDefinition(quiz=definition.quiz, questions=tuple(questions))


class InMemoryQuizRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, QuizDefinition] = {}

    async def get_definition(self, quiz_id: UUID) -> QuizDefinition | None:
        return self._by_id.get(quiz_id)

    # Loads the dev seed; quizzes are authored outside this service.
    async def add_definition(self, definition: QuizDefinition) -> None:
        if definition.quiz.id in self._by_id:
            raise ValueError("quiz already exists")
        self._by_id[definition.quiz.id] = _ordered(definition)

    async def set_status(
        self, quiz_id: UUID, status: QuizStatus
    ) -> QuizDefinition | None:
        existing = self._by_id.get(quiz_id)
        if existing is None:
            return None
        updated = replace(existing, quiz=replace(existing.quiz, status=status))
        self._by_id[quiz_id] = updated
        return updated
