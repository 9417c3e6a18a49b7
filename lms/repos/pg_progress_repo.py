"""PostgreSQL implementation of ProgressRepo."""

from __future__ import annotations

from collections.abc import Iterable
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from lms.db.tables import LessonProgressRow
from lms.models.progress import LessonProgress, ProgressState


class PgProgressRepo:
    """Satisfies the ProgressRepo Protocol using PostgreSQL."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(
        self, learner_id: UUID, lesson_id: UUID, enrollment_id: UUID
    ) -> LessonProgress | None:
        stmt = select(LessonProgressRow).where(
            LessonProgressRow.learner_id == learner_id,
            LessonProgressRow.lesson_id == lesson_id,
            LessonProgressRow.enrollment_id == enrollment_id,
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_progress(row)

    async def get_or_create(
        self, learner_id: UUID, lesson_id: UUID, enrollment_id: UUID
    ) -> LessonProgress:
        """Insert the row if absent, then lock it for the rest of the
        transaction so concurrent transitions of the same lesson serialize."""
        insert_stmt = (
            insert(LessonProgressRow)
            .values(
                id=uuid4(),
                learner_id=learner_id,
                lesson_id=lesson_id,
                enrollment_id=enrollment_id,
                state=ProgressState.NOT_STARTED.value,
            )
            .on_conflict_do_nothing(
                constraint="uq_lesson_progress_learner_lesson_enrollment"
            )
        )
        await self._session.execute(insert_stmt)

        stmt = (
            select(LessonProgressRow)
            .where(
                LessonProgressRow.learner_id == learner_id,
                LessonProgressRow.lesson_id == lesson_id,
                LessonProgressRow.enrollment_id == enrollment_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        row = (await self._session.execute(stmt)).scalar_one()
        return _row_to_progress(row)

    async def save(self, progress: LessonProgress) -> None:
        stmt = (
            update(LessonProgressRow)
            .where(LessonProgressRow.id == progress.id)
            .values(
                state=progress.state.value,
                started_at=progress.started_at,
                completed_at=progress.completed_at,
            )
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            raise KeyError("progress not found")

    async def list_for_enrollment(self, enrollment_id: UUID) -> list[LessonProgress]:
        stmt = select(LessonProgressRow).where(
            LessonProgressRow.enrollment_id == enrollment_id
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_progress(r) for r in rows]

    async def completed_lesson_ids(
        self, enrollment_ids: Iterable[UUID]
    ) -> dict[UUID, frozenset[UUID]]:
        wanted = set(enrollment_ids)
        if not wanted:
            return {}
        stmt = select(LessonProgressRow.enrollment_id, LessonProgressRow.lesson_id).where(
            LessonProgressRow.enrollment_id.in_(wanted),
            LessonProgressRow.state == ProgressState.COMPLETED.value,
        )
        found: dict[UUID, set[UUID]] = {e: set() for e in wanted}
        for enrollment_id, lesson_id in (await self._session.execute(stmt)).all():
            found[enrollment_id].add(lesson_id)
        return {e: frozenset(ids) for e, ids in found.items()}


def _row_to_progress(row: LessonProgressRow) -> LessonProgress:
    return LessonProgress(
        id=row.id,
        learner_id=row.learner_id,
        lesson_id=row.lesson_id,
        enrollment_id=row.enrollment_id,
        state=ProgressState(row.state),
        started_at=row.started_at,
        completed_at=row.completed_at,
    )
