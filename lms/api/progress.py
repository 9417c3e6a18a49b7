"""Lesson progress endpoints.

  Client -> POST /v1/enrollments/{enrollment_id}/lessons/{lesson_id}/complete
  -> progress row completed (created if absent)
  -> enrollment percentage/status recalculated, cache entry dropped on commit
  -> 200 with the lesson state and the enrollment's new status

Both transitions are idempotent; replaying them is safe.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from lms.api.dependencies import get_engine, require_learner
from lms.models.progress import LessonProgress
from lms.services.engine import LearningEngine
from lms.services.errors import NotFoundError, OwnershipError

router = APIRouter(prefix="/v1/enrollments", tags=["progress"])


class LessonProgressOut(BaseModel):
    lesson_id: UUID
    enrollment_id: UUID | None
    state: str
    started_at: int | None
    completed_at: int | None

    @staticmethod
    def of(progress: LessonProgress) -> LessonProgressOut:
        return LessonProgressOut(
            lesson_id=progress.lesson_id,
            enrollment_id=progress.enrollment_id,
            state=progress.state.value,
            started_at=progress.started_at,
            completed_at=progress.completed_at,
        )


class LessonCompletionOut(LessonProgressOut):
    enrollment_status: str
    enrollment_percentage: Decimal


@router.post(
    "/{enrollment_id}/lessons/{lesson_id}/start",
    response_model=LessonProgressOut,
)
async def start_lesson(
    enrollment_id: UUID,
    lesson_id: UUID,
    learner_id: Annotated[UUID, Depends(require_learner)],
    engine: Annotated[LearningEngine, Depends(get_engine)],
) -> LessonProgressOut:
    progress = await engine.on_lesson_started(learner_id, lesson_id, enrollment_id)
    return LessonProgressOut.of(progress)


@router.post(
    "/{enrollment_id}/lessons/{lesson_id}/complete",
    response_model=LessonCompletionOut,
)
async def complete_lesson(
    enrollment_id: UUID,
    lesson_id: UUID,
    learner_id: Annotated[UUID, Depends(require_learner)],
    engine: Annotated[LearningEngine, Depends(get_engine)],
) -> LessonCompletionOut:
    progress = await engine.on_lesson_completed(learner_id, lesson_id, enrollment_id)
    # Read inside the open transaction; the shared cache only holds committed rows.
    enrollment = await engine.repos.enrollments.get(enrollment_id)
    if enrollment is None:
        raise NotFoundError(f"enrollment {enrollment_id} not found")
    return LessonCompletionOut(
        **LessonProgressOut.of(progress).model_dump(),
        enrollment_status=enrollment.status.value,
        enrollment_percentage=enrollment.percentage,
    )


@router.get("/{enrollment_id}/progress", response_model=list[LessonProgressOut])
async def list_progress(
    enrollment_id: UUID,
    learner_id: Annotated[UUID, Depends(require_learner)],
    engine: Annotated[LearningEngine, Depends(get_engine)],
) -> list[LessonProgressOut]:
    enrollment = await engine.repos.enrollments.get(enrollment_id)
    if enrollment is None:
        raise NotFoundError(f"enrollment {enrollment_id} not found")
    if enrollment.learner_id != learner_id:
        raise OwnershipError("enrollment belongs to another learner")
    rows = await engine.repos.progress.list_for_enrollment(enrollment_id)
    return [LessonProgressOut.of(p) for p in sorted(rows, key=lambda p: str(p.lesson_id))]
