from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from lms.api.attempts import router as attempts_router
from lms.api.courses import router as courses_router
from lms.api.dependencies import engine_error_handler, memory_repositories
from lms.api.enrollments import router as enrollments_router
from lms.api.health import router as health_router
from lms.api.metrics_endpoint import router as metrics_router
from lms.api.progress import router as progress_router
from lms.api.quizzes import router as quizzes_router
from lms.core.config import SETTINGS
from lms.core.logging import setup_logging
from lms.db.engine import async_session_factory, lifespan_db
from lms.db.redis import lifespan_redis
from lms.middleware.metrics import MetricsMiddleware
from lms.middleware.request_context import RequestContextMiddleware
from lms.services.errors import EngineError
from lms.services.seed import seed_sample_course

# Configure logging before anything else runs.
setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    # Teardown runs in reverse order: Redis closes before the DB engine.
    async with lifespan_db():
        async with lifespan_redis():
            if async_session_factory is None and SETTINGS.is_dev:
                await seed_sample_course(memory_repositories)
            yield


app = FastAPI(
    title="lms-engine",
    lifespan=lifespan,
    docs_url="/docs" if SETTINGS.is_dev else None,
    redoc_url="/redoc" if SETTINGS.is_dev else None,
)

# Last-added runs first: RequestContext → Metrics → route handler.
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestContextMiddleware)

app.add_exception_handler(EngineError, engine_error_handler)  # type: ignore[arg-type]

app.include_router(metrics_router)
app.include_router(health_router)
app.include_router(courses_router)
app.include_router(enrollments_router)
app.include_router(progress_router)
app.include_router(quizzes_router)
app.include_router(attempts_router)

logger.info(
    "lms-engine started  env=%s log_level=%s port=%d docs=%s",
    SETTINGS.app_env,
    SETTINGS.log_level,
    SETTINGS.port,
    "on" if SETTINGS.is_dev else "off",
)
