"""Quiz player, submission and attempt history endpoints.

Grading responses never name the correct option.  Training-mode quizzes
add each question's explanation; the full answer key for a submitted
attempt is only available from GET /v1/attempts/{attempt_id}.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from lms.api.dependencies import get_engine, require_learner, require_role
from lms.models.attempt import Attempt
from lms.models.principal import Principal
from lms.services.engine import LearningEngine
from lms.services.quiz_grader import QuestionResponse, result_message

router = APIRouter(prefix="/v1/quizzes", tags=["quizzes"])


class AttemptOut(BaseModel):
    id: UUID
    quiz_id: UUID
    enrollment_id: UUID
    attempt_number: int
    score: int
    max_score: int
    score_percent: Decimal
    passed: bool
    message: str
    submitted_at: int

    @staticmethod
    def of(attempt: Attempt) -> AttemptOut:
        return AttemptOut(
            id=attempt.id,
            quiz_id=attempt.quiz_id,
            enrollment_id=attempt.enrollment_id,
            attempt_number=attempt.attempt_number,
            score=attempt.score,
            max_score=attempt.max_score,
            score_percent=attempt.score_percent,
            passed=attempt.passed,
            message=result_message(attempt),
            submitted_at=attempt.submitted_at,
        )


class OptionOut(BaseModel):
    id: UUID
    text: str


class QuestionOut(BaseModel):
    id: UUID
    name: str
    text: str
    points: int
    required: bool
    options: list[OptionOut]


class QuizContextOut(BaseModel):
    id: UUID
    name: str
    mode: str
    passing_score: Decimal
    max_score: int
    max_attempts: int
    allow_retakes: bool
    questions: list[QuestionOut]
    attempt_count: int
    latest_attempt: AttemptOut | None
    can_take: bool
    remaining_attempts: int | None
    blocked_reason: str | None


class ResponseIn(BaseModel):
    question_id: UUID
    selected_option_ids: list[UUID] = []


class SubmissionIn(BaseModel):
    enrollment_id: UUID
    responses: list[ResponseIn]


class QuestionResultOut(BaseModel):
    question_id: UUID
    is_correct: bool
    points_awarded: int
    explanation: str | None = None


class GradingOut(BaseModel):
    attempt: AttemptOut
    mode: str
    results: list[QuestionResultOut]


class QuizStatusOut(BaseModel):
    id: UUID
    status: str


@router.get("/{quiz_id}", response_model=QuizContextOut)
async def get_quiz_context(
    quiz_id: UUID,
    enrollment_id: UUID,
    learner_id: Annotated[UUID, Depends(require_learner)],
    engine: Annotated[LearningEngine, Depends(get_engine)],
) -> QuizContextOut:
    ctx = await engine.queries.get_quiz_context(quiz_id, learner_id, enrollment_id)
    return QuizContextOut(
        id=ctx.quiz.id,
        name=ctx.quiz.name,
        mode=ctx.quiz.mode.value,
        passing_score=ctx.quiz.passing_score,
        max_score=ctx.max_score,
        max_attempts=ctx.quiz.max_attempts,
        allow_retakes=ctx.quiz.allow_retakes,
        questions=[
            QuestionOut(
                id=q.id,
                name=q.name,
                text=q.text,
                points=q.points,
                required=q.required,
                options=[OptionOut(id=o.id, text=o.text) for o in q.options],
            )
            for q in ctx.questions
        ],
        attempt_count=ctx.attempt_count,
        latest_attempt=AttemptOut.of(ctx.latest_attempt) if ctx.latest_attempt else None,
        can_take=ctx.can_take,
        remaining_attempts=ctx.remaining_attempts,
        blocked_reason=ctx.blocked_reason,
    )


@router.post(
    "/{quiz_id}/attempts",
    response_model=GradingOut,
    status_code=status.HTTP_201_CREATED,
)
async def submit_attempt(
    quiz_id: UUID,
    payload: SubmissionIn,
    learner_id: Annotated[UUID, Depends(require_learner)],
    engine: Annotated[LearningEngine, Depends(get_engine)],
) -> GradingOut:
    result = await engine.on_quiz_submitted(
        quiz_id,
        learner_id,
        payload.enrollment_id,
        [
            QuestionResponse(
                question_id=r.question_id,
                selected_option_ids=tuple(r.selected_option_ids),
            )
            for r in payload.responses
        ],
    )
    return GradingOut(
        attempt=AttemptOut.of(result.attempt),
        mode=result.mode.value,
        results=[
            QuestionResultOut(
                question_id=r.question_id,
                is_correct=r.is_correct,
                points_awarded=r.points_awarded,
                explanation=r.explanation,
            )
            for r in result.results
        ],
    )


@router.get("/{quiz_id}/attempts", response_model=list[AttemptOut])
async def list_attempts(
    quiz_id: UUID,
    enrollment_id: UUID,
    learner_id: Annotated[UUID, Depends(require_learner)],
    engine: Annotated[LearningEngine, Depends(get_engine)],
) -> list[AttemptOut]:
    attempts = await engine.queries.get_attempt_history(quiz_id, learner_id, enrollment_id)
    return [AttemptOut.of(a) for a in attempts]


@router.get("/{quiz_id}/attempts/latest", response_model=AttemptOut | None)
async def latest_attempt(
    quiz_id: UUID,
    enrollment_id: UUID,
    learner_id: Annotated[UUID, Depends(require_learner)],
    engine: Annotated[LearningEngine, Depends(get_engine)],
) -> AttemptOut | None:
    attempt = await engine.queries.get_latest_attempt(quiz_id, learner_id, enrollment_id)
    return AttemptOut.of(attempt) if attempt is not None else None


@router.post("/{quiz_id}/activate", response_model=QuizStatusOut)
async def activate_quiz(
    quiz_id: UUID,
    _admin: Annotated[Principal, Depends(require_role("admin"))],
    engine: Annotated[LearningEngine, Depends(get_engine)],
) -> QuizStatusOut:
    definition = await engine.grader.activate_quiz(quiz_id)
    return QuizStatusOut(id=definition.quiz.id, status=definition.quiz.status.value)
