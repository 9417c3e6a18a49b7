from __future__ import annotations

from typing import Protocol
from uuid import UUID

from lms.models.attempt import Attempt

AttemptScope = tuple[UUID, UUID, UUID]  # (quiz_id, learner_id, enrollment_id)


class AttemptRepo(Protocol):
    async def count(self, quiz_id: UUID, learner_id: UUID, enrollment_id: UUID) -> int: ...
    async def history(
        self, quiz_id: UUID, learner_id: UUID, enrollment_id: UUID
    ) -> list[Attempt]: ...
    async def latest(
        self, quiz_id: UUID, learner_id: UUID, enrollment_id: UUID
    ) -> Attempt | None: ...
    async def get(self, attempt_id: UUID) -> Attempt | None: ...
    async def add(self, attempt: Attempt) -> None: ...


class InMemoryAttemptRepo:
    """Insert-only: there is no update or delete."""

    def __init__(self) -> None:
        self._by_scope: dict[AttemptScope, list[Attempt]] = {}
        self._by_id: dict[UUID, Attempt] = {}

    async def count(self, quiz_id: UUID, learner_id: UUID, enrollment_id: UUID) -> int:
        return len(self._by_scope.get((quiz_id, learner_id, enrollment_id), []))

    async def history(
        self, quiz_id: UUID, learner_id: UUID, enrollment_id: UUID
    ) -> list[Attempt]:
        attempts = self._by_scope.get((quiz_id, learner_id, enrollment_id), [])
        return sorted(attempts, key=lambda a: a.attempt_number)

    async def latest(
        self, quiz_id: UUID, learner_id: UUID, enrollment_id: UUID
    ) -> Attempt | None:
        attempts = await self.history(quiz_id, learner_id, enrollment_id)
        return attempts[-1] if attempts else None

    async def get(self, attempt_id: UUID) -> Attempt | None:
        return self._by_id.get(attempt_id)

    async def add(self, attempt: Attempt) -> None:
        scope = (attempt.quiz_id, attempt.learner_id, attempt.enrollment_id)
        existing = self._by_scope.setdefault(scope, [])
        if any(a.attempt_number == attempt.attempt_number for a in existing):
            raise ValueError("attempt number already taken")
        existing.append(attempt)
        self._by_id[attempt.id] = attempt
