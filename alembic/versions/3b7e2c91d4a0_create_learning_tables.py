"""create catalog, enrollment, progress and quiz tables

Revision ID: 3b7e2c91d4a0
Revises:
Create Date: 2026-10-17 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3b7e2c91d4a0"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _uuid() -> postgresql.UUID:
    return postgresql.UUID(as_uuid=True)


def upgrade() -> None:
    op.create_table(
        "courses",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("slug", sa.String(length=255), nullable=False, unique=True),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
    )
    op.create_table(
        "course_modules",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column(
            "course_id",
            _uuid(),
            sa.ForeignKey("courses.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=500), nullable=False),
    )
    op.create_index("ix_course_modules_course_id", "course_modules", ["course_id"])
    op.create_table(
        "lessons",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column(
            "module_id",
            _uuid(),
            sa.ForeignKey("course_modules.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=500), nullable=False),
        sa.Column("content_type", sa.String(length=32), nullable=False),
    )
    op.create_index("ix_lessons_module_id", "lessons", ["module_id"])

    op.create_table(
        "enrollments",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("learner_id", _uuid(), nullable=False),
        sa.Column(
            "course_id",
            _uuid(),
            sa.ForeignKey("courses.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("percentage", sa.Numeric(5, 2), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("enrolled_at", sa.Integer(), nullable=False),
        sa.Column("completed_at", sa.Integer(), nullable=True),
        sa.Column("retired_at", sa.Integer(), nullable=True),
        sa.CheckConstraint(
            "percentage >= 0 AND percentage <= 100", name="ck_enrollments_percentage"
        ),
    )
    op.create_index(
        "uq_enrollments_active_learner_course",
        "enrollments",
        ["learner_id", "course_id"],
        unique=True,
        postgresql_where=sa.text("retired_at IS NULL"),
    )

    op.create_table(
        "lesson_progress",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("learner_id", _uuid(), nullable=False),
        sa.Column(
            "lesson_id",
            _uuid(),
            sa.ForeignKey("lessons.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "enrollment_id",
            _uuid(),
            sa.ForeignKey("enrollments.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("state", sa.String(length=32), nullable=False),
        sa.Column("started_at", sa.Integer(), nullable=True),
        sa.Column("completed_at", sa.Integer(), nullable=True),
        sa.UniqueConstraint(
            "learner_id",
            "lesson_id",
            "enrollment_id",
            name="uq_lesson_progress_learner_lesson_enrollment",
        ),
    )
    op.create_index(
        "ix_lesson_progress_enrollment_id", "lesson_progress", ["enrollment_id"]
    )

    op.create_table(
        "quizzes",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("name", sa.String(length=500), nullable=False),
        sa.Column("lesson_id", _uuid(), sa.ForeignKey("lessons.id"), nullable=True),
        sa.Column("course_id", _uuid(), sa.ForeignKey("courses.id"), nullable=True),
        sa.Column("passing_score", sa.Numeric(5, 2), nullable=False),
        sa.Column("max_attempts", sa.Integer(), nullable=False),
        sa.Column("allow_retakes", sa.Boolean(), nullable=False),
        sa.Column("mode", sa.String(length=16), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.CheckConstraint(
            "(lesson_id IS NULL) <> (course_id IS NULL)", name="ck_quizzes_one_scope"
        ),
    )
    op.create_table(
        "quiz_questions",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column(
            "quiz_id",
            _uuid(),
            sa.ForeignKey("quizzes.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("points", sa.Integer(), nullable=False),
        sa.Column("required", sa.Boolean(), nullable=False),
        sa.Column("explanation", sa.Text(), nullable=True),
    )
    op.create_index("ix_quiz_questions_quiz_id", "quiz_questions", ["quiz_id"])
    op.create_table(
        "quiz_options",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column(
            "question_id",
            _uuid(),
            sa.ForeignKey("quiz_questions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("is_correct", sa.Boolean(), nullable=False),
    )
    op.create_index("ix_quiz_options_question_id", "quiz_options", ["question_id"])

    op.create_table(
        "quiz_attempts",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("quiz_id", _uuid(), sa.ForeignKey("quizzes.id"), nullable=False),
        sa.Column("learner_id", _uuid(), nullable=False),
        sa.Column(
            "enrollment_id",
            _uuid(),
            sa.ForeignKey("enrollments.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("attempt_number", sa.Integer(), nullable=False),
        sa.Column("score", sa.Integer(), nullable=False),
        sa.Column("max_score", sa.Integer(), nullable=False),
        sa.Column("passed", sa.Boolean(), nullable=False),
        sa.Column("submitted_at", sa.Integer(), nullable=False),
        sa.UniqueConstraint(
            "quiz_id",
            "learner_id",
            "enrollment_id",
            "attempt_number",
            name="uq_quiz_attempts_number",
        ),
    )
    op.create_table(
        "attempt_answers",
        sa.Column(
            "attempt_id", _uuid(), sa.ForeignKey("quiz_attempts.id"), primary_key=True
        ),
        sa.Column(
            "question_id", _uuid(), sa.ForeignKey("quiz_questions.id"), primary_key=True
        ),
        sa.Column("selected_option_ids", postgresql.ARRAY(_uuid()), nullable=False),
        sa.Column("is_correct", sa.Boolean(), nullable=False),
        sa.Column("points_awarded", sa.Integer(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("attempt_answers")
    op.drop_table("quiz_attempts")
    op.drop_index("ix_quiz_options_question_id", table_name="quiz_options")
    op.drop_table("quiz_options")
    op.drop_index("ix_quiz_questions_quiz_id", table_name="quiz_questions")
    op.drop_table("quiz_questions")
    op.drop_table("quizzes")
    op.drop_index("ix_lesson_progress_enrollment_id", table_name="lesson_progress")
    op.drop_table("lesson_progress")
    op.drop_index("uq_enrollments_active_learner_course", table_name="enrollments")
    op.drop_table("enrollments")
    op.drop_index("ix_lessons_module_id", table_name="lessons")
    op.drop_table("lessons")
    op.drop_index("ix_course_modules_course_id", table_name="course_modules")
    op.drop_table("course_modules")
    op.drop_table("courses")
