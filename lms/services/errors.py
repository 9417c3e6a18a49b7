"""Errors raised by the engine services.

Each carries a stable ``code`` that the API layer returns alongside the
human-readable message, so clients can branch without parsing text.
"""

from __future__ import annotations


class EngineError(Exception):
    """Base engine error."""

    code = "engine_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class NotFoundError(EngineError):
    """A referenced lesson, module, quiz, attempt or enrollment does not exist."""

    code = "not_found"


class NotEligibleError(EngineError):
    """The learner has used every attempt the quiz allows."""

    code = "not_eligible"


class RetakeNotAllowedError(EngineError):
    """The quiz forbids retakes and the learner already has an attempt."""

    code = "retake_not_allowed"


class IncompleteSubmissionError(EngineError):
    """A required question has no selected option."""

    code = "incomplete_submission"

    def __init__(self, message: str, question_ids: list[str] | None = None) -> None:
        super().__init__(message)
        self.question_ids = question_ids or []


class QuizNotActiveError(EngineError):
    code = "quiz_not_active"


class QuizValidationError(EngineError):
    """The quiz definition breaks an activation rule."""

    code = "quiz_invalid"


class AggregationConflictError(EngineError):
    """Optimistic-lock retries exhausted.  Transient: the caller may retry."""

    code = "aggregation_conflict"


class BatchTooLargeError(EngineError):
    """A recalculation call exceeded the per-call enrollment cap.  Not retryable."""

    code = "batch_too_large"


class OwnershipError(EngineError):
    """The enrollment or attempt belongs to a different learner."""

    code = "forbidden"


class AttemptConflictError(EngineError):
    """Another submission took the same attempt number first."""

    code = "attempt_conflict"
