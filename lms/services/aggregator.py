"""Enrollment completion aggregation.

The aggregator is the only writer of ``Enrollment.percentage`` and
``Enrollment.status``.  For one enrollment it counts the lessons under the
enrollment's course (the denominator) and the completed progress rows of
that enrollment whose lesson is in the denominator, then persists the
derived percentage/status if either changed.

Writes are compare-and-set on ``Enrollment.version``.  A lost race is
retried with a fresh read of the enrollment and its progress, at most
AGGREGATION_MAX_RETRIES times, after which AggregationConflictError
surfaces to the caller.

With a database session the status cache entry is not dropped here: the
key is recorded on the unit of work and deleted after it commits, so a
reader racing the open transaction cannot re-cache the old row past it.

Batch calls (``recalculate_many``) run one pass per distinct enrollment,
read in chunks of AGGREGATION_CHUNK_SIZE with the lesson lookups grouped
by course.  A failure in one enrollment is logged and reported without
aborting the rest of the batch.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from lms.core.clock import now_epoch
from lms.core.config import SETTINGS
from lms.core.metrics import (
    AGGREGATION_CONFLICTS,
    RECALCULATION_BATCH_SIZE,
    RECALCULATIONS,
)
from lms.models.enrollment import Enrollment, EnrollmentStatus, percent_of
from lms.repos.registry import Repositories
from lms.services.cache import CacheService, cache_service, enrollment_status_key
from lms.services.errors import AggregationConflictError, BatchTooLargeError

logger = logging.getLogger(__name__)


class _VersionConflict(Exception):
    """The enrollment changed between our read and our write."""


@dataclass(frozen=True, slots=True)
class RecalculationOutcome:
    enrollment_id: UUID
    result: str  # "updated", "unchanged", "missing", "failed"
    percentage: Decimal | None = None
    status: EnrollmentStatus | None = None
    error: str | None = None


@dataclass(frozen=True, slots=True)
class RecalculationReport:
    outcomes: tuple[RecalculationOutcome, ...]

    def count(self, result: str) -> int:
        return sum(1 for o in self.outcomes if o.result == result)

    @property
    def failed(self) -> list[RecalculationOutcome]:
        return [o for o in self.outcomes if o.result == "failed"]


def compute_completion(
    lesson_ids: frozenset[UUID], completed_lesson_ids: frozenset[UUID]
) -> tuple[Decimal, EnrollmentStatus]:
    """Derive (percentage, status) from the course's lessons and the
    enrollment's completed lessons.  Completed lessons outside the course
    are ignored.  A course with no lessons is 0% / not_started."""
    total = len(lesson_ids)
    completed = len(lesson_ids & completed_lesson_ids)
    percentage = percent_of(completed, total)
    return percentage, EnrollmentStatus.for_percentage(percentage)


class EnrollmentAggregator:
    def __init__(
        self,
        repos: Repositories,
        *,
        cache: CacheService | None = None,
        max_retries: int = SETTINGS.aggregation_max_retries,
        chunk_size: int = SETTINGS.aggregation_chunk_size,
        max_batch: int = SETTINGS.aggregation_max_batch,
        clock: Callable[[], int] = now_epoch,
    ) -> None:
        self._repos = repos
        self._cache = cache if cache is not None else cache_service
        self._max_retries = max_retries
        self._chunk_size = chunk_size
        self._max_batch = max_batch
        self._clock = clock

    async def recalculate(self, enrollment_id: UUID) -> RecalculationOutcome:
        """Recalculate one enrollment.

        Missing enrollments are a logged no-op.  Unlike the batch form,
        errors propagate so the caller's unit of work rolls back.
        """
        enrollment = await self._repos.enrollments.get(enrollment_id)
        if enrollment is None:
            return self._missing(enrollment_id)
        lesson_ids, completed = await self._read_inputs(enrollment)
        return await self._recalculate_one(enrollment, lesson_ids, completed)

    async def recalculate_many(self, enrollment_ids: Iterable[UUID]) -> RecalculationReport:
        """Recalculate a batch of enrollments, one pass per distinct id."""
        unique_ids = list(dict.fromkeys(enrollment_ids))
        if len(unique_ids) > self._max_batch:
            logger.error(
                "Recalculation batch rejected: %d enrollments exceeds cap of %d",
                len(unique_ids),
                self._max_batch,
            )
            raise BatchTooLargeError(
                f"batch of {len(unique_ids)} enrollments exceeds the limit of {self._max_batch}"
            )

        RECALCULATION_BATCH_SIZE.observe(len(unique_ids))
        outcomes: list[RecalculationOutcome] = []
        for start in range(0, len(unique_ids), self._chunk_size):
            chunk = unique_ids[start : start + self._chunk_size]
            outcomes.extend(await self._recalculate_chunk(chunk))

        report = RecalculationReport(outcomes=tuple(outcomes))
        logger.info(
            "Recalculated %d enrollments: %d updated, %d unchanged, %d missing, %d failed",
            len(unique_ids),
            report.count("updated"),
            report.count("unchanged"),
            report.count("missing"),
            report.count("failed"),
        )
        return report

    async def _recalculate_chunk(self, chunk: list[UUID]) -> list[RecalculationOutcome]:
        enrollments = await self._repos.enrollments.get_many(chunk)
        lessons_by_course = await self._repos.catalog.lesson_ids_by_course(
            {e.course_id for e in enrollments.values()}
        )
        completed_by_enrollment = await self._repos.progress.completed_lesson_ids(
            list(enrollments)
        )

        outcomes = []
        for enrollment_id in chunk:
            enrollment = enrollments.get(enrollment_id)
            if enrollment is None:
                outcomes.append(self._missing(enrollment_id))
                continue
            try:
                async with self._repos.savepoint():
                    outcome = await self._recalculate_one(
                        enrollment,
                        lessons_by_course.get(enrollment.course_id, frozenset()),
                        completed_by_enrollment.get(enrollment_id, frozenset()),
                    )
            except Exception as exc:
                logger.exception(
                    "Recalculation failed for enrollment %s",
                    enrollment_id,
                    extra={"enrollment_id": str(enrollment_id)},
                )
                RECALCULATIONS.labels(result="failed").inc()
                outcome = RecalculationOutcome(
                    enrollment_id=enrollment_id, result="failed", error=str(exc)
                )
            outcomes.append(outcome)
        return outcomes

    async def _recalculate_one(
        self,
        enrollment: Enrollment,
        lesson_ids: frozenset[UUID],
        completed: frozenset[UUID],
    ) -> RecalculationOutcome:
        attempt = 0
        while True:
            try:
                return await self._apply(enrollment, lesson_ids, completed)
            except _VersionConflict:
                AGGREGATION_CONFLICTS.inc()
                attempt += 1
                if attempt > self._max_retries:
                    logger.error(
                        "Gave up on enrollment %s after %d conflicting writes",
                        enrollment.id,
                        attempt,
                        extra={"enrollment_id": str(enrollment.id)},
                    )
                    raise AggregationConflictError(
                        f"enrollment {enrollment.id} kept changing during recalculation"
                    ) from None
                logger.debug(
                    "Version conflict on enrollment %s, retry %d", enrollment.id, attempt
                )

            fresh = await self._repos.enrollments.get(enrollment.id)
            if fresh is None:
                return self._missing(enrollment.id)
            enrollment = fresh
            lesson_ids, completed = await self._read_inputs(enrollment)

    async def _apply(
        self,
        enrollment: Enrollment,
        lesson_ids: frozenset[UUID],
        completed: frozenset[UUID],
    ) -> RecalculationOutcome:
        percentage, status = compute_completion(lesson_ids, completed)
        if enrollment.percentage == percentage and enrollment.status is status:
            RECALCULATIONS.labels(result="unchanged").inc()
            return RecalculationOutcome(
                enrollment_id=enrollment.id,
                result="unchanged",
                percentage=percentage,
                status=status,
            )

        if status is EnrollmentStatus.COMPLETED:
            completed_at = enrollment.completed_at or self._clock()
        else:
            completed_at = None

        updated = await self._repos.enrollments.update_completion(
            enrollment.id,
            expected_version=enrollment.version,
            percentage=percentage,
            status=status,
            completed_at=completed_at,
        )
        if updated is None:
            raise _VersionConflict()

        await self._invalidate(enrollment.id)
        RECALCULATIONS.labels(result="updated").inc()
        logger.info(
            "Enrollment %s now %s at %s%%",
            enrollment.id,
            status.value,
            percentage,
            extra={"enrollment_id": str(enrollment.id)},
        )
        return RecalculationOutcome(
            enrollment_id=enrollment.id,
            result="updated",
            percentage=percentage,
            status=status,
        )

    async def _invalidate(self, enrollment_id: UUID) -> None:
        key = enrollment_status_key(enrollment_id)
        if self._repos.session is None:
            # In-memory writes are visible as soon as they are made.
            await self._cache.delete(key)
        else:
            self._repos.stale_cache_keys.add(key)

    async def _read_inputs(
        self, enrollment: Enrollment
    ) -> tuple[frozenset[UUID], frozenset[UUID]]:
        lessons_by_course = await self._repos.catalog.lesson_ids_by_course(
            {enrollment.course_id}
        )
        completed = await self._repos.progress.completed_lesson_ids([enrollment.id])
        return (
            lessons_by_course.get(enrollment.course_id, frozenset()),
            completed.get(enrollment.id, frozenset()),
        )

    def _missing(self, enrollment_id: UUID) -> RecalculationOutcome:
        logger.warning(
            "Skipping recalculation: enrollment %s not found",
            enrollment_id,
            extra={"enrollment_id": str(enrollment_id)},
        )
        RECALCULATIONS.labels(result="missing").inc()
        return RecalculationOutcome(enrollment_id=enrollment_id, result="missing")
