"""PostgreSQL implementation of AttemptRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from lms.db.tables import AttemptAnswerRow, QuizAttemptRow
from lms.models.attempt import Attempt, AttemptAnswer


class PgAttemptRepo:
    """Satisfies the AttemptRepo Protocol using PostgreSQL.  Insert-only."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def count(self, quiz_id: UUID, learner_id: UUID, enrollment_id: UUID) -> int:
        stmt = select(func.count()).select_from(QuizAttemptRow).where(
            QuizAttemptRow.quiz_id == quiz_id,
            QuizAttemptRow.learner_id == learner_id,
            QuizAttemptRow.enrollment_id == enrollment_id,
        )
        return (await self._session.execute(stmt)).scalar_one()

    async def history(
        self, quiz_id: UUID, learner_id: UUID, enrollment_id: UUID
    ) -> list[Attempt]:
        stmt = (
            select(QuizAttemptRow)
            .where(
                QuizAttemptRow.quiz_id == quiz_id,
                QuizAttemptRow.learner_id == learner_id,
                QuizAttemptRow.enrollment_id == enrollment_id,
            )
            .order_by(QuizAttemptRow.attempt_number)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        answers = await self._answers_for([r.id for r in rows])
        return [_row_to_attempt(r, answers.get(r.id, ())) for r in rows]

    async def latest(
        self, quiz_id: UUID, learner_id: UUID, enrollment_id: UUID
    ) -> Attempt | None:
        stmt = (
            select(QuizAttemptRow)
            .where(
                QuizAttemptRow.quiz_id == quiz_id,
                QuizAttemptRow.learner_id == learner_id,
                QuizAttemptRow.enrollment_id == enrollment_id,
            )
            .order_by(QuizAttemptRow.attempt_number.desc())
            .limit(1)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        answers = await self._answers_for([row.id])
        return _row_to_attempt(row, answers.get(row.id, ()))

    async def get(self, attempt_id: UUID) -> Attempt | None:
        row = await self._session.get(QuizAttemptRow, attempt_id)
        if row is None:
            return None
        answers = await self._answers_for([row.id])
        return _row_to_attempt(row, answers.get(row.id, ()))

    async def add(self, attempt: Attempt) -> None:
        self._session.add(
            QuizAttemptRow(
                id=attempt.id,
                quiz_id=attempt.quiz_id,
                learner_id=attempt.learner_id,
                enrollment_id=attempt.enrollment_id,
                attempt_number=attempt.attempt_number,
                score=attempt.score,
                max_score=attempt.max_score,
                passed=attempt.passed,
                submitted_at=attempt.submitted_at,
            )
        )
        try:
            async with self._session.begin_nested():
                await self._session.flush()
        except IntegrityError as exc:
            raise ValueError("attempt number already taken") from exc
        for a in attempt.answers:
            self._session.add(
                AttemptAnswerRow(
                    attempt_id=attempt.id,
                    question_id=a.question_id,
                    selected_option_ids=list(a.selected_option_ids),
                    is_correct=a.is_correct,
                    points_awarded=a.points_awarded,
                )
            )
        await self._session.flush()

    async def _answers_for(
        self, attempt_ids: list[UUID]
    ) -> dict[UUID, tuple[AttemptAnswer, ...]]:
        if not attempt_ids:
            return {}
        stmt = select(AttemptAnswerRow).where(
            AttemptAnswerRow.attempt_id.in_(attempt_ids)
        )
        grouped: dict[UUID, list[AttemptAnswer]] = {}
        for row in (await self._session.execute(stmt)).scalars().all():
            grouped.setdefault(row.attempt_id, []).append(
                AttemptAnswer(
                    question_id=row.question_id,
                    selected_option_ids=tuple(row.selected_option_ids or ()),
                    is_correct=row.is_correct,
                    points_awarded=row.points_awarded,
                )
            )
        return {k: tuple(v) for k, v in grouped.items()}


def _row_to_attempt(row: QuizAttemptRow, answers: tuple[AttemptAnswer, ...]) -> Attempt:
    return Attempt(
        id=row.id,
        quiz_id=row.quiz_id,
        learner_id=row.learner_id,
        enrollment_id=row.enrollment_id,
        attempt_number=row.attempt_number,
        score=row.score,
        max_score=row.max_score,
        passed=row.passed,
        submitted_at=row.submitted_at,
        answers=answers,
    )
