"""PostgreSQL implementation of EnrollmentRepo."""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from lms.db.tables import EnrollmentRow
from lms.models.enrollment import Enrollment, EnrollmentStatus


class PgEnrollmentRepo:
    """Satisfies the EnrollmentRepo Protocol using PostgreSQL."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, enrollment_id: UUID) -> Enrollment | None:
        stmt = select(EnrollmentRow).where(EnrollmentRow.id == enrollment_id)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_enrollment(row)

    async def get_many(self, enrollment_ids: Iterable[UUID]) -> dict[UUID, Enrollment]:
        ids = set(enrollment_ids)
        if not ids:
            return {}
        stmt = select(EnrollmentRow).where(EnrollmentRow.id.in_(ids))
        rows = (await self._session.execute(stmt)).scalars().all()
        return {r.id: _row_to_enrollment(r) for r in rows}

    async def get_active(self, learner_id: UUID, course_id: UUID) -> Enrollment | None:
        stmt = select(EnrollmentRow).where(
            EnrollmentRow.learner_id == learner_id,
            EnrollmentRow.course_id == course_id,
            EnrollmentRow.retired_at.is_(None),
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_enrollment(row)

    async def list_by_learner(self, learner_id: UUID) -> list[Enrollment]:
        stmt = (
            select(EnrollmentRow)
            .where(EnrollmentRow.learner_id == learner_id)
            .order_by(EnrollmentRow.enrolled_at, EnrollmentRow.id)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_enrollment(r) for r in rows]

    async def add(self, enrollment: Enrollment) -> None:
        row = EnrollmentRow(
            id=enrollment.id,
            learner_id=enrollment.learner_id,
            course_id=enrollment.course_id,
            status=enrollment.status.value,
            percentage=enrollment.percentage,
            version=enrollment.version,
            enrolled_at=enrollment.enrolled_at,
            completed_at=enrollment.completed_at,
            retired_at=enrollment.retired_at,
        )
        self._session.add(row)
        await self._session.flush()

    async def retire(self, enrollment_id: UUID, retired_at: int) -> None:
        stmt = (
            update(EnrollmentRow)
            .where(EnrollmentRow.id == enrollment_id)
            .values(retired_at=retired_at)
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            raise KeyError("enrollment not found")

    async def update_completion(
        self,
        enrollment_id: UUID,
        *,
        expected_version: int,
        percentage: Decimal,
        status: EnrollmentStatus,
        completed_at: int | None,
    ) -> Enrollment | None:
        """Atomically write the derived fields if nobody else has since the
        caller's read.  Returns None if the enrollment is gone or the
        version moved on (concurrent recalculation won the race)."""
        stmt = (
            update(EnrollmentRow)
            .where(EnrollmentRow.id == enrollment_id)
            .where(EnrollmentRow.version == expected_version)
            .values(
                percentage=percentage,
                status=status.value,
                completed_at=completed_at,
                version=EnrollmentRow.version + 1,
            )
            .returning(EnrollmentRow)
            .execution_options(synchronize_session="fetch")
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_enrollment(row)


def _row_to_enrollment(row: EnrollmentRow) -> Enrollment:
    return Enrollment(
        id=row.id,
        learner_id=row.learner_id,
        course_id=row.course_id,
        enrolled_at=row.enrolled_at,
        status=EnrollmentStatus(row.status),
        percentage=Decimal(row.percentage),
        version=row.version,
        completed_at=row.completed_at,
        retired_at=row.retired_at,
    )
