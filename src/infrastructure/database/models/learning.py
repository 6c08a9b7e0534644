# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""ORM models for concepts, mastery, review schedules and learning records.

Mastery and review schedules are unique per (user_id, concept_id); the
repositories rely on those constraints for ``INSERT ... ON CONFLICT``.
"""

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.orm import Mapped, mapped_column

from src.infrastructure.database.models.base import Base, TimestampMixin
from src.utils.datetime import utc_now


def _uuid() -> str:
    return str(uuid.uuid4())


class ConceptModel(Base, TimestampMixin):
    __tablename__ = "concepts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    subject_area: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    grade_band: Mapped[str | None] = mapped_column(String(10))
    source_type: Mapped[str] = mapped_column(String(20), nullable=False, default="CURATED")


class ConceptPrerequisiteModel(Base):
    """Directed edge: ``prerequisite_id`` must be learned before ``concept_id``."""

    __tablename__ = "concept_prerequisites"
    __table_args__ = (
        CheckConstraint("concept_id <> prerequisite_id", name="ck_concept_prerequisites_no_self_loop"),
    )

    concept_id: Mapped[str] = mapped_column(
        ForeignKey("concepts.id", ondelete="CASCADE"), primary_key=True
    )
    prerequisite_id: Mapped[str] = mapped_column(
        ForeignKey("concepts.id", ondelete="CASCADE"), primary_key=True
    )


class UserConceptMasteryModel(Base, TimestampMixin):
    __tablename__ = "user_concept_mastery"
    __table_args__ = (UniqueConstraint("user_id", "concept_id", name="uq_user_concept_mastery"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    concept_id: Mapped[str] = mapped_column(
        ForeignKey("concepts.id", ondelete="CASCADE"), nullable=False
    )
    mastery_level: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    last_practiced: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    history: Mapped[list[dict[str, Any]]] = mapped_column(JSONB, nullable=False, default=list)
    bkt: Mapped[dict[str, float] | None] = mapped_column(JSONB)


class ReviewScheduleModel(Base, TimestampMixin):
    __tablename__ = "review_schedules"
    __table_args__ = (
        UniqueConstraint("user_id", "concept_id", name="uq_review_schedules_user_concept"),
        CheckConstraint("interval >= 1", name="ck_review_schedules_interval"),
        CheckConstraint("ease_factor >= 1.3", name="ck_review_schedules_ease"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    concept_id: Mapped[str] = mapped_column(
        ForeignKey("concepts.id", ondelete="CASCADE"), nullable=False
    )
    next_review_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    interval: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    ease_factor: Mapped[float] = mapped_column(Float, nullable=False, default=2.5)
    repetitions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_quality: Mapped[int | None] = mapped_column(Integer)
    last_reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class TranscriptEntryModel(Base):
    __tablename__ = "transcript_entries"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    activity_name: Mapped[str] = mapped_column(Text, nullable=False)
    mapped_subject: Mapped[str] = mapped_column(Text, nullable=False, default="")
    credits_earned: Mapped[float] = mapped_column(Float, nullable=False, default=0.5)
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    date_completed: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )


class LearningGapModel(Base):
    __tablename__ = "learning_gaps"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    concept_id: Mapped[str] = mapped_column(
        ForeignKey("concepts.id", ondelete="CASCADE"), nullable=False
    )
    severity: Mapped[str] = mapped_column(String(20), nullable=False, default="MODERATE")
    detected_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    addressed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class ReflectionEntryModel(Base):
    __tablename__ = "reflection_entries"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    activity_summary: Mapped[str] = mapped_column(Text, nullable=False)
    prompt_used: Mapped[str] = mapped_column(Text, nullable=False)
    dimension: Mapped[str] = mapped_column(String(20), nullable=False)
    student_response: Mapped[str | None] = mapped_column(Text)
    ai_follow_up: Mapped[str | None] = mapped_column(Text)
    insight_score: Mapped[float | None] = mapped_column(Float)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )


class OpportunityModel(Base):
    __tablename__ = "opportunities"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    age_range: Mapped[str | None] = mapped_column(String(20))
    matched_interests: Mapped[list[str]] = mapped_column(
        ARRAY(String), nullable=False, default=list
    )
    deadline: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
