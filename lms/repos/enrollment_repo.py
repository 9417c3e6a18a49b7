from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace
from decimal import Decimal
from typing import Protocol
from uuid import UUID

from lms.models.enrollment import Enrollment, EnrollmentStatus


class EnrollmentRepo(Protocol):
    async def get(self, enrollment_id: UUID) -> Enrollment | None: ...
    async def get_many(self, enrollment_ids: Iterable[UUID]) -> dict[UUID, Enrollment]: ...
    async def get_active(self, learner_id: UUID, course_id: UUID) -> Enrollment | None: ...
    async def list_by_learner(self, learner_id: UUID) -> list[Enrollment]: ...
    async def add(self, enrollment: Enrollment) -> None: ...
    async def retire(self, enrollment_id: UUID, retired_at: int) -> None: ...
    async def update_completion(
        self,
        enrollment_id: UUID,
        *,
        expected_version: int,
        percentage: Decimal,
        status: EnrollmentStatus,
        completed_at: int | None,
    ) -> Enrollment | None: ...


class InMemoryEnrollmentRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, Enrollment] = {}

    async def get(self, enrollment_id: UUID) -> Enrollment | None:
        return self._by_id.get(enrollment_id)

    async def get_many(self, enrollment_ids: Iterable[UUID]) -> dict[UUID, Enrollment]:
        return {i: self._by_id[i] for i in set(enrollment_ids) if i in self._by_id}

    async def get_active(self, learner_id: UUID, course_id: UUID) -> Enrollment | None:
        for e in self._by_id.values():
            if e.learner_id == learner_id and e.course_id == course_id and e.is_active:
                return e
        return None

    async def list_by_learner(self, learner_id: UUID) -> list[Enrollment]:
        return [e for e in self._by_id.values() if e.learner_id == learner_id]

    async def add(self, enrollment: Enrollment) -> None:
        if enrollment.id in self._by_id:
            raise ValueError("enrollment already exists")
        if enrollment.is_active and await self.get_active(
            enrollment.learner_id, enrollment.course_id
        ):
            raise ValueError("active enrollment already exists for learner and course")
        self._by_id[enrollment.id] = enrollment

    async def retire(self, enrollment_id: UUID, retired_at: int) -> None:
        e = self._by_id.get(enrollment_id)
        if e is None:
            raise KeyError("enrollment not found")
        self._by_id[enrollment_id] = replace(e, retired_at=retired_at)

    async def update_completion(
        self,
        enrollment_id: UUID,
        *,
        expected_version: int,
        percentage: Decimal,
        status: EnrollmentStatus,
        completed_at: int | None,
    ) -> Enrollment | None:
        """Compare-and-set on ``version``.  Returns None when the row is gone
        or another writer got there first."""
        e = self._by_id.get(enrollment_id)
        if e is None or e.version != expected_version:
            return None
        updated = replace(
            e,
            percentage=percentage,
            status=status,
            completed_at=completed_at,
            version=e.version + 1,
        )
        self._by_id[enrollment_id] = updated
        return updated

    def remove(self, enrollment_id: UUID) -> None:
        """Drop an enrollment (admin/test hook; the engine never deletes)."""
        self._by_id.pop(enrollment_id, None)
