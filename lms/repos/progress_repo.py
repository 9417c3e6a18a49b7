from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace
from typing import Protocol
from uuid import UUID

from lms.models.progress import LessonProgress, ProgressState

ProgressKey = tuple[UUID, UUID, UUID]  # (learner_id, lesson_id, enrollment_id)


class ProgressRepo(Protocol):
    async def get(
        self, learner_id: UUID, lesson_id: UUID, enrollment_id: UUID
    ) -> LessonProgress | None: ...
    async def get_or_create(
        self, learner_id: UUID, lesson_id: UUID, enrollment_id: UUID
    ) -> LessonProgress: ...
    async def save(self, progress: LessonProgress) -> None: ...
    async def list_for_enrollment(self, enrollment_id: UUID) -> list[LessonProgress]: ...
    async def completed_lesson_ids(
        self, enrollment_ids: Iterable[UUID]
    ) -> dict[UUID, frozenset[UUID]]: ...


class InMemoryProgressRepo:
    def __init__(self) -> None:
        self._store: dict[ProgressKey, LessonProgress] = {}
        self._orphans: list[LessonProgress] = []

    async def get(
        self, learner_id: UUID, lesson_id: UUID, enrollment_id: UUID
    ) -> LessonProgress | None:
        return self._store.get((learner_id, lesson_id, enrollment_id))

    async def get_or_create(
        self, learner_id: UUID, lesson_id: UUID, enrollment_id: UUID
    ) -> LessonProgress:
        key = (learner_id, lesson_id, enrollment_id)
        existing = self._store.get(key)
        if existing is not None:
            return existing
        created = LessonProgress.new(
            learner_id=learner_id, lesson_id=lesson_id, enrollment_id=enrollment_id
        )
        self._store[key] = created
        return created

    async def save(self, progress: LessonProgress) -> None:
        if progress.enrollment_id is None:
            raise ValueError("cannot save progress without an enrollment")
        key = (progress.learner_id, progress.lesson_id, progress.enrollment_id)
        existing = self._store.get(key)
        if existing is None or existing.id != progress.id:
            raise KeyError("progress not found")
        self._store[key] = progress

    async def list_for_enrollment(self, enrollment_id: UUID) -> list[LessonProgress]:
        return [p for p in self._store.values() if p.enrollment_id == enrollment_id]

    async def completed_lesson_ids(
        self, enrollment_ids: Iterable[UUID]
    ) -> dict[UUID, frozenset[UUID]]:
        wanted = set(enrollment_ids)
        found: dict[UUID, set[UUID]] = {e: set() for e in wanted}
        for p in self._store.values():
            if p.enrollment_id in wanted and p.state is ProgressState.COMPLETED:
                found[p.enrollment_id].add(p.lesson_id)
        return {e: frozenset(ids) for e, ids in found.items()}

    def orphan(self, enrollment_id: UUID) -> None:
        """Clear the enrollment reference on every row that points at it,
        as the database does on enrollment deletion."""
        for key, p in list(self._store.items()):
            if p.enrollment_id == enrollment_id:
                del self._store[key]
                self._orphans.append(replace(p, enrollment_id=None))
