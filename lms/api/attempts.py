"""Attempt review: the answer key for one submitted attempt, owner only."""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from lms.api.dependencies import get_engine, require_learner
from lms.api.quizzes import AttemptOut
from lms.services.engine import LearningEngine

router = APIRouter(prefix="/v1/attempts", tags=["quizzes"])


class ReviewOptionOut(BaseModel):
    id: UUID
    text: str
    selected: bool
    correct: bool


class ReviewQuestionOut(BaseModel):
    id: UUID
    name: str
    text: str
    points: int
    points_awarded: int
    is_correct: bool
    explanation: str | None
    options: list[ReviewOptionOut]


class AttemptReviewOut(BaseModel):
    attempt: AttemptOut
    quiz_name: str
    questions: list[ReviewQuestionOut]


@router.get("/{attempt_id}", response_model=AttemptReviewOut)
async def review_attempt(
    attempt_id: UUID,
    learner_id: Annotated[UUID, Depends(require_learner)],
    engine: Annotated[LearningEngine, Depends(get_engine)],
) -> AttemptReviewOut:
    review = await engine.queries.get_attempt_detail(attempt_id, learner_id)
    return AttemptReviewOut(
        attempt=AttemptOut.of(review.attempt),
        quiz_name=review.quiz.name,
        questions=[
            ReviewQuestionOut(
                id=q.id,
                name=q.name,
                text=q.text,
                points=q.points,
                points_awarded=q.points_awarded,
                is_correct=q.is_correct,
                explanation=q.explanation,
                options=[
                    ReviewOptionOut(id=o.id, text=o.text, selected=o.selected, correct=o.correct)
                    for o in q.options
                ],
            )
            for q in review.questions
        ],
    )
