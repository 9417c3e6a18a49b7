"""PostgreSQL implementation of CatalogRepo."""

from __future__ import annotations

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lms.db.tables import CourseModuleRow, CourseRow, LessonRow
from lms.models.course import Course, CourseModule, Lesson


class PgCatalogRepo:
    """Satisfies the CatalogRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_course(self, course_id: UUID) -> Course | None:
        row = await self._session.get(CourseRow, course_id)
        return _row_to_course(row) if row is not None else None

    async def list_courses(self) -> list[Course]:
        stmt = select(CourseRow).order_by(CourseRow.title, CourseRow.id)
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_course(r) for r in rows]

    async def get_module(self, module_id: UUID) -> CourseModule | None:
        row = await self._session.get(CourseModuleRow, module_id)
        if row is None:
            return None
        return CourseModule(id=row.id, course_id=row.course_id, name=row.name)

    async def get_lesson(self, lesson_id: UUID) -> Lesson | None:
        row = await self._session.get(LessonRow, lesson_id)
        return _row_to_lesson(row) if row is not None else None

    async def course_id_for_lesson(self, lesson_id: UUID) -> UUID | None:
        stmt = (
            select(CourseModuleRow.course_id)
            .join(LessonRow, LessonRow.module_id == CourseModuleRow.id)
            .where(LessonRow.id == lesson_id)
        )
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def lessons_for_module(self, module_id: UUID) -> list[Lesson]:
        stmt = (
            select(LessonRow)
            .where(LessonRow.module_id == module_id)
            .order_by(LessonRow.name, LessonRow.id)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_lesson(r) for r in rows]

    async def lesson_ids_by_course(
        self, course_ids: Iterable[UUID]
    ) -> dict[UUID, frozenset[UUID]]:
        wanted = set(course_ids)
        if not wanted:
            return {}
        stmt = (
            select(CourseModuleRow.course_id, LessonRow.id)
            .join(LessonRow, LessonRow.module_id == CourseModuleRow.id)
            .where(CourseModuleRow.course_id.in_(wanted))
        )
        found: dict[UUID, set[UUID]] = {course_id: set() for course_id in wanted}
        for course_id, lesson_id in (await self._session.execute(stmt)).all():
            found[course_id].add(lesson_id)
        return {course_id: frozenset(ids) for course_id, ids in found.items()}


def _row_to_course(row: CourseRow) -> Course:
    return Course(id=row.id, slug=row.slug, title=row.title, status=row.status)


def _row_to_lesson(row: LessonRow) -> Lesson:
    return Lesson(
        id=row.id,
        module_id=row.module_id,
        name=row.name,
        content_type=row.content_type,
    )
