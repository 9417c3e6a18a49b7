from __future__ import annotations

import logging
from collections.abc import Callable
from uuid import UUID

from lms.core.clock import now_epoch
from lms.models.enrollment import Enrollment, EnrollmentStatus
from lms.repos.registry import Repositories
from lms.services.errors import NotFoundError

logger = logging.getLogger(__name__)


class EnrollmentService:
    """Enrollment lifecycle.  Never touches percentage/status."""

    def __init__(self, repos: Repositories, *, clock: Callable[[], int] = now_epoch) -> None:
        self._repos = repos
        self._clock = clock

    async def enroll(self, learner_id: UUID, course_id: UUID) -> Enrollment:
        """Return the learner's active enrollment in the course, or a new one.

        An active enrollment that is already completed is retired and
        replaced, so re-taking a course starts from 0% with fresh progress
        and attempt history.
        """
        if await self._repos.catalog.get_course(course_id) is None:
            raise NotFoundError(f"course {course_id} not found")

        now = self._clock()
        current = await self._repos.enrollments.get_active(learner_id, course_id)
        if current is not None:
            if current.status is not EnrollmentStatus.COMPLETED:
                return current
            await self._repos.enrollments.retire(current.id, now)
            logger.info(
                "Retired completed enrollment %s for re-enrollment",
                current.id,
                extra={"enrollment_id": str(current.id), "learner_id": str(learner_id)},
            )

        enrollment = Enrollment.new(
            learner_id=learner_id, course_id=course_id, enrolled_at=now
        )
        await self._repos.enrollments.add(enrollment)
        logger.info(
            "Learner enrolled in course %s",
            course_id,
            extra={"enrollment_id": str(enrollment.id), "learner_id": str(learner_id)},
        )
        return enrollment
