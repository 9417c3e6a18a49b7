"""Course catalog listing and enrollment.

  Client -> POST /v1/courses/{course_id}/enroll
  -> active, unfinished enrollment exists?  return it (200)
  -> otherwise retire any completed one, create a fresh enrollment (201)
"""

from __future__ import annotations

from decimal import Decimal
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel

from lms.api.dependencies import get_engine, require_learner, require_user
from lms.models.enrollment import Enrollment
from lms.models.principal import Principal
from lms.services.engine import LearningEngine

router = APIRouter(prefix="/v1/courses", tags=["courses"])


class CourseOut(BaseModel):
    id: UUID
    slug: str
    title: str
    status: str


class EnrollmentOut(BaseModel):
    id: UUID
    learner_id: UUID
    course_id: UUID
    status: str
    percentage: Decimal
    enrolled_at: int
    completed_at: int | None
    retired_at: int | None

    @staticmethod
    def of(enrollment: Enrollment) -> EnrollmentOut:
        return EnrollmentOut(
            id=enrollment.id,
            learner_id=enrollment.learner_id,
            course_id=enrollment.course_id,
            status=enrollment.status.value,
            percentage=enrollment.percentage,
            enrolled_at=enrollment.enrolled_at,
            completed_at=enrollment.completed_at,
            retired_at=enrollment.retired_at,
        )


@router.get("", response_model=list[CourseOut])
async def list_courses(
    _principal: Annotated[Principal, Depends(require_user)],
    engine: Annotated[LearningEngine, Depends(get_engine)],
) -> list[CourseOut]:
    courses = await engine.repos.catalog.list_courses()
    return [CourseOut(id=c.id, slug=c.slug, title=c.title, status=c.status) for c in courses]


@router.post(
    "/{course_id}/enroll",
    response_model=EnrollmentOut,
    status_code=status.HTTP_201_CREATED,
)
async def enroll_in_course(
    course_id: UUID,
    response: Response,
    learner_id: Annotated[UUID, Depends(require_learner)],
    engine: Annotated[LearningEngine, Depends(get_engine)],
) -> EnrollmentOut:
    existing = await engine.repos.enrollments.get_active(learner_id, course_id)
    enrollment = await engine.enrollments.enroll(learner_id, course_id)
    if existing is not None and existing.id == enrollment.id:
        response.status_code = status.HTTP_200_OK
    return EnrollmentOut.of(enrollment)
