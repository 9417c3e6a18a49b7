"""Sample catalog for local development (in-memory repositories only)."""

from __future__ import annotations

import logging
from decimal import Decimal
from uuid import UUID

from lms.models.course import Course, CourseModule, Lesson
from lms.models.quiz import (
    AnswerOption,
    Question,
    QuestionDefinition,
    Quiz,
    QuizDefinition,
    QuizMode,
    QuizStatus,
)
from lms.repos.registry import Repositories

logger = logging.getLogger(__name__)

SAMPLE_COURSE_ID = UUID("00000000-0000-0000-0000-000000000001")
SAMPLE_QUIZ_ID = UUID("00000000-0000-0000-0000-0000000000a1")

_MODULES = {
    "01 Getting started": ["Welcome", "How prompts work"],
    "02 Working with tools": ["Calling a tool", "Reading tool output"],
}


async def seed_sample_course(repos: Repositories) -> bool:
    """Seed one published course with two modules, four lessons and an
    active training-mode quiz on the first lesson.  Returns False if the
    course is already there."""
    if await repos.catalog.get_course(SAMPLE_COURSE_ID) is not None:
        return False

    await repos.catalog.add_course(
        Course(
            id=SAMPLE_COURSE_ID,
            slug="intro-to-claude",
            title="Introduction to Claude",
            status="published",
        )
    )
    first_lesson: Lesson | None = None
    for module_name, lesson_names in _MODULES.items():
        module = CourseModule.new(course_id=SAMPLE_COURSE_ID, name=module_name)
        await repos.catalog.add_module(module)
        for lesson_name in lesson_names:
            lesson = Lesson.new(module_id=module.id, name=lesson_name)
            await repos.catalog.add_lesson(lesson)
            if first_lesson is None:
                first_lesson = lesson

    quiz = Quiz(
        id=SAMPLE_QUIZ_ID,
        name="Welcome check",
        passing_score=Decimal(50),
        lesson_id=first_lesson.id,
        max_attempts=3,
        mode=QuizMode.TRAINING,
        status=QuizStatus.ACTIVE,
    )
    questions = []
    for name, text, answers, explanation in (
        (
            "Q1",
            "What is a prompt?",
            [("The input you give the model", True), ("A model setting", False)],
            "A prompt is the text the model responds to.",
        ),
        (
            "Q2",
            "Can a prompt include examples?",
            [("Yes", True), ("No", False)],
            "Examples in a prompt help show the expected format.",
        ),
    ):
        question = Question.new(
            quiz_id=quiz.id, name=name, text=text, explanation=explanation
        )
        options = tuple(
            AnswerOption.new(question_id=question.id, text=t, is_correct=c)
            for t, c in answers
        )
        questions.append(QuestionDefinition(question=question, options=options))
    await repos.quizzes.add_definition(QuizDefinition(quiz=quiz, questions=tuple(questions)))

    logger.info("Seeded sample course %s", SAMPLE_COURSE_ID)
    return True
