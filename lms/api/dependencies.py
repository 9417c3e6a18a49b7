from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from typing import Annotated
from uuid import UUID

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordBearer

from lms.db.engine import async_session_factory, session_scope
from lms.models.principal import Principal
from lms.repos.registry import Repositories, in_memory_repositories, pg_repositories
from lms.services import token_service
from lms.services.cache import drop_stale_keys
from lms.services.engine import LearningEngine
from lms.services.errors import (
    AggregationConflictError,
    AttemptConflictError,
    BatchTooLargeError,
    EngineError,
    IncompleteSubmissionError,
    NotEligibleError,
    NotFoundError,
    OwnershipError,
    QuizNotActiveError,
    QuizValidationError,
    RetakeNotAllowedError,
)

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/oauth/token")

# Process-wide repositories used when no DATABASE_URL is configured.
memory_repositories = in_memory_repositories()


def require_user(
    raw_token: Annotated[str, Depends(oauth2_scheme)],
) -> Principal:
    """Extract and validate the JWT bearer token. Returns a Principal."""
    try:
        claims = token_service.decode_access_token(raw_token)
    except jwt.ExpiredSignatureError:
        logger.warning("Expired token rejected")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token expired",
            headers={"WWW-Authenticate": "Bearer"},
        ) from None
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid token rejected: %s", e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from None

    principal = Principal(
        user_id=claims["sub"],
        roles=frozenset(claims.get("roles", [])),
    )
    logger.debug(
        "Token validated for user=%s roles=%s",
        principal.user_id,
        principal.roles,
    )
    return principal


def require_role(role: str):
    """Dependency factory: demand a specific role.

    Usage: Depends(require_role("admin"))
    Returns the Principal if the role is present, else 403.
    """

    def _guard(
        principal: Annotated[Principal, Depends(require_user)],
    ) -> Principal:
        if not principal.has_role(role):
            logger.warning(
                "Access denied: user=%s missing role=%s",
                principal.user_id,
                role,
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return principal

    return _guard


def require_learner(
    principal: Annotated[Principal, Depends(require_user)],
) -> UUID:
    """The caller's learner id.  Learner subjects are UUIDs."""
    learner_id = principal.learner_id
    if learner_id is None:
        logger.warning("Access denied: subject %s is not a learner id", principal.user_id)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Token subject is not a learner",
        )
    return learner_id


async def get_repositories() -> AsyncGenerator[Repositories, None]:
    """Request-scoped repositories.  With a database, every repository in
    the request shares one session that commits when the handler returns
    and rolls back if it raises.  Status cache entries the request made
    stale are deleted only after the commit."""
    if async_session_factory is None:
        yield memory_repositories
        return
    async with session_scope() as session:
        repos = pg_repositories(session)
        yield repos
    await drop_stale_keys(repos.stale_cache_keys)


def get_engine(
    repos: Annotated[Repositories, Depends(get_repositories)],
) -> LearningEngine:
    return LearningEngine(repos)


# ---------------------------------------------------------------------------
# Engine error -> HTTP response
# ---------------------------------------------------------------------------

_STATUS_BY_ERROR: dict[type[EngineError], int] = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    OwnershipError: status.HTTP_403_FORBIDDEN,
    NotEligibleError: status.HTTP_409_CONFLICT,
    RetakeNotAllowedError: status.HTTP_409_CONFLICT,
    QuizNotActiveError: status.HTTP_409_CONFLICT,
    AttemptConflictError: status.HTTP_409_CONFLICT,
    IncompleteSubmissionError: 422,
    QuizValidationError: 422,
    BatchTooLargeError: 413,
    AggregationConflictError: status.HTTP_503_SERVICE_UNAVAILABLE,
}

AGGREGATION_RETRY_AFTER_SECONDS = 1


async def engine_error_handler(_request: Request, exc: EngineError) -> JSONResponse:
    status_code = _STATUS_BY_ERROR.get(type(exc), status.HTTP_400_BAD_REQUEST)
    body: dict = {"detail": exc.message, "code": exc.code}
    headers = None
    if isinstance(exc, IncompleteSubmissionError):
        body["question_ids"] = exc.question_ids
    if isinstance(exc, AggregationConflictError):
        headers = {"Retry-After": str(AGGREGATION_RETRY_AFTER_SECONDS)}
    if status_code >= 500:
        logger.error("Engine error %s: %s", exc.code, exc.message)
    else:
        logger.info("Engine rejected request (%s): %s", exc.code, exc.message)
    return JSONResponse(status_code=status_code, content=body, headers=headers)
