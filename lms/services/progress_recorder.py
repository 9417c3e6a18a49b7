"""Progress Recorder: the only writer of lesson progress rows."""

from __future__ import annotations

import logging
from collections.abc import Callable
from uuid import UUID

from lms.core.clock import now_epoch
from lms.core.metrics import LESSON_TRANSITIONS
from lms.models.enrollment import Enrollment
from lms.models.progress import LessonProgress, ProgressState
from lms.repos.registry import Repositories
from lms.services.aggregator import EnrollmentAggregator
from lms.services.errors import NotFoundError, OwnershipError

logger = logging.getLogger(__name__)


class ProgressRecorder:
    """Moves (learner, lesson, enrollment) progress forward.

    States only move forward: not_started -> in_progress -> completed.
    Every completion triggers a recalculation of the owning enrollment
    before returning, inside the caller's unit of work.
    """

    def __init__(
        self,
        repos: Repositories,
        aggregator: EnrollmentAggregator,
        *,
        clock: Callable[[], int] = now_epoch,
    ) -> None:
        self._repos = repos
        self._aggregator = aggregator
        self._clock = clock

    async def start_lesson(
        self, learner_id: UUID, lesson_id: UUID, enrollment_id: UUID
    ) -> LessonProgress:
        await self._check_scope(learner_id, lesson_id, enrollment_id)
        progress = await self._repos.progress.get_or_create(
            learner_id, lesson_id, enrollment_id
        )
        if progress.state is not ProgressState.NOT_STARTED:
            if progress.is_completed:
                logger.warning(
                    "Ignoring start of completed lesson %s",
                    lesson_id,
                    extra={
                        "enrollment_id": str(enrollment_id),
                        "lesson_id": str(lesson_id),
                    },
                )
            LESSON_TRANSITIONS.labels(transition="noop").inc()
            return progress

        started = progress.start(self._clock())
        await self._repos.progress.save(started)
        LESSON_TRANSITIONS.labels(transition="started").inc()
        logger.info(
            "Lesson %s started",
            lesson_id,
            extra={
                "enrollment_id": str(enrollment_id),
                "learner_id": str(learner_id),
                "lesson_id": str(lesson_id),
            },
        )
        return started

    async def complete_lesson(
        self, learner_id: UUID, lesson_id: UUID, enrollment_id: UUID
    ) -> LessonProgress:
        await self._check_scope(learner_id, lesson_id, enrollment_id)
        progress = await self._repos.progress.get_or_create(
            learner_id, lesson_id, enrollment_id
        )
        completed = progress.complete(self._clock())
        await self._repos.progress.save(completed)
        LESSON_TRANSITIONS.labels(transition="completed").inc()
        logger.info(
            "Lesson %s completed",
            lesson_id,
            extra={
                "enrollment_id": str(enrollment_id),
                "learner_id": str(learner_id),
                "lesson_id": str(lesson_id),
            },
        )

        await self._aggregator.recalculate(enrollment_id)
        return completed

    async def _check_scope(
        self, learner_id: UUID, lesson_id: UUID, enrollment_id: UUID
    ) -> Enrollment:
        enrollment = await self._repos.enrollments.get(enrollment_id)
        if enrollment is None:
            raise NotFoundError(f"enrollment {enrollment_id} not found")
        if enrollment.learner_id != learner_id:
            raise OwnershipError("enrollment belongs to another learner")
        course_id = await self._repos.catalog.course_id_for_lesson(lesson_id)
        if course_id is None:
            raise NotFoundError(f"lesson {lesson_id} not found")
        if course_id != enrollment.course_id:
            raise NotFoundError(f"lesson {lesson_id} is not part of this enrollment's course")
        return enrollment
