"""PostgreSQL implementation of QuizRepo."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from lms.db.tables import QuizOptionRow, QuizQuestionRow, QuizRow
from lms.models.quiz import (
    AnswerOption,
    Question,
    QuestionDefinition,
    Quiz,
    QuizDefinition,
    QuizMode,
    QuizStatus,
)


class PgQuizRepo:
    """Satisfies the QuizRepo Protocol using PostgreSQL."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_definition(self, quiz_id: UUID) -> QuizDefinition | None:
        quiz_row = await self._session.get(QuizRow, quiz_id)
        if quiz_row is None:
            return None

        # Questions and options in one round trip, already in display order.
        stmt = (
            select(QuizQuestionRow, QuizOptionRow)
            .outerjoin(QuizOptionRow, QuizOptionRow.question_id == QuizQuestionRow.id)
            .where(QuizQuestionRow.quiz_id == quiz_id)
            .order_by(
                QuizQuestionRow.name,
                QuizQuestionRow.id,
                QuizOptionRow.text,
                QuizOptionRow.id,
            )
        )
        questions: dict[UUID, Question] = {}
        options: dict[UUID, list[AnswerOption]] = {}
        for q_row, o_row in (await self._session.execute(stmt)).all():
            if q_row.id not in questions:
                questions[q_row.id] = _row_to_question(q_row)
                options[q_row.id] = []
            if o_row is not None:
                options[q_row.id].append(
                    AnswerOption(
                        id=o_row.id,
                        question_id=o_row.question_id,
                        text=o_row.text,
                        is_correct=o_row.is_correct,
                    )
                )

        return QuizDefinition(
            quiz=_row_to_quiz(quiz_row),
            questions=tuple(
                QuestionDefinition(question=q, options=tuple(options[q_id]))
                for q_id, q in questions.items()
            ),
        )

    async def set_status(
        self, quiz_id: UUID, status: QuizStatus
    ) -> QuizDefinition | None:
        stmt = update(QuizRow).where(QuizRow.id == quiz_id).values(status=status.value)
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            return None
        self._session.expire_all()
        return await self.get_definition(quiz_id)


def _row_to_quiz(row: QuizRow) -> Quiz:
    return Quiz(
        id=row.id,
        name=row.name,
        passing_score=Decimal(row.passing_score),
        lesson_id=row.lesson_id,
        course_id=row.course_id,
        max_attempts=row.max_attempts,
        allow_retakes=row.allow_retakes,
        mode=QuizMode(row.mode),
        status=QuizStatus(row.status),
    )


def _row_to_question(row: QuizQuestionRow) -> Question:
    return Question(
        id=row.id,
        quiz_id=row.quiz_id,
        name=row.name,
        text=row.text,
        points=row.points,
        required=row.required,
        explanation=row.explanation,
    )
