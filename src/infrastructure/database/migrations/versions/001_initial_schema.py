# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Initial learning database schema.

Revision ID: 001_initial_schema
Revises: None
Create Date: 2025-01-15

Creates the concept graph, per-learner mastery and review state, the
transcript, gaps, reflections, opportunities and the ai_jobs table.
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id_column() -> sa.Column:
    return sa.Column(
        "id",
        sa.String(36),
        server_default=sa.text("gen_random_uuid()::text"),
        primary_key=True,
    )


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def upgrade() -> None:
    """Create learning database tables."""
    op.execute('CREATE EXTENSION IF NOT EXISTS "pgcrypto"')

    # ==========================================================================
    # 1. concepts + prerequisite edges
    # ==========================================================================
    op.create_table(
        "concepts",
        _id_column(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("subject_area", sa.String(100), nullable=False),
        sa.Column("grade_band", sa.String(10), nullable=True),
        sa.Column("source_type", sa.String(20), nullable=False, server_default="CURATED"),
        *_timestamps(),
    )
    op.create_index("ix_concepts_name", "concepts", ["name"])
    op.create_index("ix_concepts_subject_area", "concepts", ["subject_area"])

    op.create_table(
        "concept_prerequisites",
        sa.Column(
            "concept_id",
            sa.String(36),
            sa.ForeignKey("concepts.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "prerequisite_id",
            sa.String(36),
            sa.ForeignKey("concepts.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.CheckConstraint(
            "concept_id <> prerequisite_id", name="ck_concept_prerequisites_no_self_loop"
        ),
    )

    # ==========================================================================
    # 2. user_concept_mastery
    # ==========================================================================
    op.create_table(
        "user_concept_mastery",
        _id_column(),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column(
            "concept_id",
            sa.String(36),
            sa.ForeignKey("concepts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("mastery_level", sa.Float(), nullable=False, server_default="0"),
        sa.Column("last_practiced", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "history",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("bkt", postgresql.JSONB(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "concept_id", name="uq_user_concept_mastery"),
    )
    op.create_index("ix_user_concept_mastery_user_id", "user_concept_mastery", ["user_id"])

    # ==========================================================================
    # 3. review_schedules
    # ==========================================================================
    op.create_table(
        "review_schedules",
        _id_column(),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column(
            "concept_id",
            sa.String(36),
            sa.ForeignKey("concepts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("next_review_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("interval", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("ease_factor", sa.Float(), nullable=False, server_default="2.5"),
        sa.Column("repetitions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_quality", sa.Integer(), nullable=True),
        sa.Column("last_reviewed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "concept_id", name="uq_review_schedules_user_concept"),
        sa.CheckConstraint("interval >= 1", name="ck_review_schedules_interval"),
        sa.CheckConstraint("ease_factor >= 1.3", name="ck_review_schedules_ease"),
    )
    op.create_index("ix_review_schedules_user_id", "review_schedules", ["user_id"])
    op.create_index("ix_review_schedules_next_review_at", "review_schedules", ["next_review_at"])

    # ==========================================================================
    # 4. transcript_entries, learning_gaps, reflection_entries
    # ==========================================================================
    op.create_table(
        "transcript_entries",
        _id_column(),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("activity_name", sa.Text(), nullable=False),
        sa.Column("mapped_subject", sa.Text(), nullable=False, server_default=""),
        sa.Column("credits_earned", sa.Float(), nullable=False, server_default="0.5"),
        sa.Column("notes", sa.Text(), nullable=False, server_default=""),
        sa.Column(
            "date_completed",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    )
    op.create_index("ix_transcript_entries_user_id", "transcript_entries", ["user_id"])

    op.create_table(
        "learning_gaps",
        _id_column(),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column(
            "concept_id",
            sa.String(36),
            sa.ForeignKey("concepts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("severity", sa.String(20), nullable=False, server_default="MODERATE"),
        sa.Column(
            "detected_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("addressed", sa.Boolean(), nullable=False, server_default=sa.text("false")),
    )
    op.create_index("ix_learning_gaps_user_id", "learning_gaps", ["user_id"])

    op.create_table(
        "reflection_entries",
        _id_column(),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("activity_summary", sa.Text(), nullable=False),
        sa.Column("prompt_used", sa.Text(), nullable=False),
        sa.Column("dimension", sa.String(20), nullable=False),
        sa.Column("student_response", sa.Text(), nullable=True),
        sa.Column("ai_follow_up", sa.Text(), nullable=True),
        sa.Column("insight_score", sa.Float(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    )
    op.create_index("ix_reflection_entries_user_id", "reflection_entries", ["user_id"])

    # ==========================================================================
    # 5. opportunities
    # ==========================================================================
    op.create_table(
        "opportunities",
        _id_column(),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("type", sa.String(50), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("age_range", sa.String(20), nullable=True),
        sa.Column(
            "matched_interests",
            postgresql.ARRAY(sa.String()),
            nullable=False,
            server_default=sa.text("'{}'"),
        ),
        sa.Column("deadline", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    )

    # ==========================================================================
    # 6. ai_jobs
    # ==========================================================================
    op.create_table(
        "ai_jobs",
        _id_column(),
        sa.Column("user_id", sa.String(64), nullable=True),
        sa.Column("session_id", sa.String(64), nullable=False),
        sa.Column("prompt", sa.Text(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
        sa.Column("intent", sa.String(20), nullable=True),
        sa.Column("result", sa.Text(), nullable=True),
        sa.Column(
            "job_metadata",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "status IN ('PENDING', 'PROCESSING', 'COMPLETED', 'FAILED')",
            name="ck_ai_jobs_status",
        ),
    )
    op.create_index("ix_ai_jobs_user_id", "ai_jobs", ["user_id"])
    op.create_index("ix_ai_jobs_status_created_at", "ai_jobs", ["status", "created_at"])


def downgrade() -> None:
    """Drop learning database tables."""
    op.drop_table("ai_jobs")
    op.drop_table("opportunities")
    op.drop_table("reflection_entries")
    op.drop_table("learning_gaps")
    op.drop_table("transcript_entries")
    op.drop_table("review_schedules")
    op.drop_table("user_concept_mastery")
    op.drop_table("concept_prerequisites")
    op.drop_table("concepts")
