"""Repository bundles.

The engine services take one ``Repositories`` object.  With no
DATABASE_URL the API hands them the process-wide in-memory bundle; with a
database it builds a Pg bundle over the request-scoped session, so every
repository in a request shares one transaction.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession

from lms.repos.attempt_repo import AttemptRepo, InMemoryAttemptRepo
from lms.repos.catalog_repo import CatalogRepo, InMemoryCatalogRepo
from lms.repos.enrollment_repo import EnrollmentRepo, InMemoryEnrollmentRepo
from lms.repos.pg_attempt_repo import PgAttemptRepo
from lms.repos.pg_catalog_repo import PgCatalogRepo
from lms.repos.pg_enrollment_repo import PgEnrollmentRepo
from lms.repos.pg_progress_repo import PgProgressRepo
from lms.repos.pg_quiz_repo import PgQuizRepo
from lms.repos.progress_repo import InMemoryProgressRepo, ProgressRepo
from lms.repos.quiz_repo import InMemoryQuizRepo, QuizRepo


@dataclass(frozen=True, slots=True)
class Repositories:
    catalog: CatalogRepo
    enrollments: EnrollmentRepo
    progress: ProgressRepo
    quizzes: QuizRepo
    attempts: AttemptRepo
    session: AsyncSession | None = None
    # Cache keys made stale by this unit of work, dropped once it commits.
    stale_cache_keys: set[str] = field(default_factory=set)

    def savepoint(self):
        """Async context manager isolating one unit of work inside the
        request transaction.  A failure rolls back only that unit."""
        if self.session is None:
            return _no_savepoint()
        return self.session.begin_nested()


@asynccontextmanager
async def _no_savepoint() -> AsyncIterator[None]:
    yield


def in_memory_repositories() -> Repositories:
    return Repositories(
        catalog=InMemoryCatalogRepo(),
        enrollments=InMemoryEnrollmentRepo(),
        progress=InMemoryProgressRepo(),
        quizzes=InMemoryQuizRepo(),
        attempts=InMemoryAttemptRepo(),
    )


def pg_repositories(session: AsyncSession) -> Repositories:
    return Repositories(
        catalog=PgCatalogRepo(session),
        enrollments=PgEnrollmentRepo(session),
        progress=PgProgressRepo(session),
        quizzes=PgQuizRepo(session),
        attempts=PgAttemptRepo(session),
        session=session,
    )
