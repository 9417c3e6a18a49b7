"""Enrollment status, the learner's course list and the recalculation hook.

GET /v1/enrollments/{id}/status is read-through cached; the aggregator
drops the cache entry once its write to the enrollment commits.

POST /v1/enrollments/recalculate is the entry point for the external
automation layer (admin only).  It is idempotent: replaying a batch
re-derives the same percentages and writes nothing new.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from lms.api.courses import EnrollmentOut
from lms.api.dependencies import get_engine, require_learner, require_role, require_user
from lms.models.principal import Principal
from lms.services.engine import LearningEngine
from lms.services.errors import OwnershipError

router = APIRouter(prefix="/v1/enrollments", tags=["enrollments"])


class EnrollmentStatusOut(BaseModel):
    enrollment_id: UUID
    course_id: UUID
    status: str
    percentage: Decimal
    completed_at: int | None


class MyEnrollmentOut(EnrollmentOut):
    course_title: str


class ModuleCompletionOut(BaseModel):
    enrollment_id: UUID
    module_id: UUID
    completed: bool


class RecalculateIn(BaseModel):
    enrollment_ids: list[UUID] = Field(min_length=1)


class RecalculationOutcomeOut(BaseModel):
    enrollment_id: UUID
    result: str
    percentage: Decimal | None = None
    status: str | None = None
    error: str | None = None


class RecalculationReportOut(BaseModel):
    processed: int
    updated: int
    unchanged: int
    missing: int
    failed: int
    outcomes: list[RecalculationOutcomeOut]


@router.get("", response_model=list[MyEnrollmentOut])
async def list_my_enrollments(
    learner_id: Annotated[UUID, Depends(require_learner)],
    engine: Annotated[LearningEngine, Depends(get_engine)],
) -> list[MyEnrollmentOut]:
    summaries = await engine.queries.list_enrollments(learner_id)
    return [
        MyEnrollmentOut(
            **EnrollmentOut.of(s.enrollment).model_dump(), course_title=s.course_title
        )
        for s in summaries
    ]


@router.get("/{enrollment_id}/status", response_model=EnrollmentStatusOut)
async def get_enrollment_status(
    enrollment_id: UUID,
    principal: Annotated[Principal, Depends(require_user)],
    engine: Annotated[LearningEngine, Depends(get_engine)],
) -> EnrollmentStatusOut:
    view = await engine.queries.get_enrollment_status(enrollment_id)
    if not principal.is_platform_admin() and principal.learner_id != view.learner_id:
        raise OwnershipError("enrollment belongs to another learner")
    return EnrollmentStatusOut(
        enrollment_id=view.enrollment_id,
        course_id=view.course_id,
        status=view.status.value,
        percentage=view.percentage,
        completed_at=view.completed_at,
    )


@router.get(
    "/{enrollment_id}/modules/{module_id}/completed",
    response_model=ModuleCompletionOut,
)
async def get_module_completion(
    enrollment_id: UUID,
    module_id: UUID,
    learner_id: Annotated[UUID, Depends(require_learner)],
    engine: Annotated[LearningEngine, Depends(get_engine)],
) -> ModuleCompletionOut:
    enrollment = await engine.repos.enrollments.get(enrollment_id)
    if enrollment is not None and enrollment.learner_id != learner_id:
        raise OwnershipError("enrollment belongs to another learner")
    completed = await engine.queries.is_module_completed(enrollment_id, module_id)
    return ModuleCompletionOut(
        enrollment_id=enrollment_id, module_id=module_id, completed=completed
    )


@router.post("/recalculate", response_model=RecalculationReportOut)
async def recalculate_enrollments(
    payload: RecalculateIn,
    _admin: Annotated[Principal, Depends(require_role("admin"))],
    engine: Annotated[LearningEngine, Depends(get_engine)],
) -> RecalculationReportOut:
    report = await engine.recalculate_many(payload.enrollment_ids)
    return RecalculationReportOut(
        processed=len(report.outcomes),
        updated=report.count("updated"),
        unchanged=report.count("unchanged"),
        missing=report.count("missing"),
        failed=report.count("failed"),
        outcomes=[
            RecalculationOutcomeOut(
                enrollment_id=o.enrollment_id,
                result=o.result,
                percentage=o.percentage,
                status=o.status.value if o.status is not None else None,
                error=o.error,
            )
            for o in report.outcomes
        ],
    )
