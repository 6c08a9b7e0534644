# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""PostgreSQL implementation of LearningStore.

Read-modify-write transactions on mastery and review schedules lock the
row with ``SELECT ... FOR UPDATE`` after an ``INSERT ... ON CONFLICT DO
NOTHING`` guarantees it exists, so concurrent updates for one
(user, concept) key serialize in the database instead of in the process.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator

from sqlalchemy import and_, or_, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.memory.stores.base import (
    ConceptRecord,
    GapSeverity,
    LearningGapRecord,
    LearningStore,
    MasteryRecord,
    OpportunityRecord,
    ReflectionRecord,
    ReflectionType,
    ReviewScheduleRecord,
    SourceType,
    TranscriptRecord,
)
from src.infrastructure.database.connection import Database
from src.infrastructure.database.models.learning import (
    ConceptModel,
    ConceptPrerequisiteModel,
    LearningGapModel,
    OpportunityModel,
    ReflectionEntryModel,
    ReviewScheduleModel,
    TranscriptEntryModel,
    UserConceptMasteryModel,
)
from src.utils.datetime import utc_now

logger = logging.getLogger(__name__)


# =============================================================================
# Row <-> record conversion
# =============================================================================


def _concept(row: ConceptModel, prerequisite_ids: list[str] | None = None) -> ConceptRecord:
    return ConceptRecord(
        id=row.id,
        name=row.name,
        description=row.description,
        subject_area=row.subject_area,
        grade_band=row.grade_band,
        source_type=SourceType(row.source_type),
        prerequisite_ids=list(prerequisite_ids or []),
    )


def _mastery(row: UserConceptMasteryModel) -> MasteryRecord:
    return MasteryRecord(
        user_id=row.user_id,
        concept_id=row.concept_id,
        mastery_level=row.mastery_level,
        last_practiced=row.last_practiced,
        history=list(row.history or []),
        bkt=dict(row.bkt) if row.bkt else None,
    )


def _schedule(row: ReviewScheduleModel) -> ReviewScheduleRecord:
    return ReviewScheduleRecord(
        user_id=row.user_id,
        concept_id=row.concept_id,
        next_review_at=row.next_review_at,
        interval=row.interval,
        ease_factor=row.ease_factor,
        repetitions=row.repetitions,
        last_quality=row.last_quality,
        last_reviewed_at=row.last_reviewed_at,
    )


def _transcript(row: TranscriptEntryModel) -> TranscriptRecord:
    return TranscriptRecord(
        id=row.id,
        user_id=row.user_id,
        activity_name=row.activity_name,
        mapped_subject=row.mapped_subject,
        credits_earned=row.credits_earned,
        notes=row.notes,
        date_completed=row.date_completed,
    )


def _gap(row: LearningGapModel) -> LearningGapRecord:
    return LearningGapRecord(
        id=row.id,
        user_id=row.user_id,
        concept_id=row.concept_id,
        severity=GapSeverity(row.severity),
        detected_at=row.detected_at,
        addressed=row.addressed,
    )


def _reflection(row: ReflectionEntryModel) -> ReflectionRecord:
    return ReflectionRecord(
        id=row.id,
        user_id=row.user_id,
        type=ReflectionType(row.type),
        activity_summary=row.activity_summary,
        prompt_used=row.prompt_used,
        dimension=row.dimension,
        student_response=row.student_response,
        ai_follow_up=row.ai_follow_up,
        insight_score=row.insight_score,
        created_at=row.created_at,
    )


def _opportunity(row: OpportunityModel) -> OpportunityRecord:
    return OpportunityRecord(
        id=row.id,
        title=row.title,
        type=row.type,
        description=row.description,
        age_range=row.age_range,
        matched_interests=list(row.matched_interests or []),
        deadline=row.deadline,
        created_at=row.created_at,
    )


class SqlLearningStore(LearningStore):
    """LearningStore backed by the learning database."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def _prerequisites_for(
        self, session: AsyncSession, concept_ids: list[str]
    ) -> dict[str, list[str]]:
        if not concept_ids:
            return {}
        result = await session.execute(
            select(ConceptPrerequisiteModel).where(
                ConceptPrerequisiteModel.concept_id.in_(concept_ids)
            )
        )
        edges: dict[str, list[str]] = {cid: [] for cid in concept_ids}
        for edge in result.scalars().all():
            edges[edge.concept_id].append(edge.prerequisite_id)
        return edges

    async def _concepts(self, session: AsyncSession, stmt) -> list[ConceptRecord]:
        rows = (await session.execute(stmt)).scalars().all()
        edges = await self._prerequisites_for(session, [r.id for r in rows])
        return [_concept(r, edges.get(r.id)) for r in rows]

    # Concepts -----------------------------------------------------------------

    async def add_concept(self, concept: ConceptRecord) -> ConceptRecord:
        async with self._db.session() as session:
            session.add(
                ConceptModel(
                    id=concept.id,
                    name=concept.name,
                    description=concept.description,
                    subject_area=concept.subject_area,
                    grade_band=concept.grade_band,
                    source_type=SourceType(concept.source_type).value,
                )
            )
        return concept

    async def get_concept(self, concept_id: str) -> ConceptRecord | None:
        async with self._db.session() as session:
            found = await self._concepts(
                session, select(ConceptModel).where(ConceptModel.id == concept_id)
            )
        return found[0] if found else None

    async def find_concept_by_name(self, name: str) -> ConceptRecord | None:
        async with self._db.session() as session:
            found = await self._concepts(
                session,
                select(ConceptModel)
                .where(ConceptModel.name == name)
                .order_by(ConceptModel.created_at)
                .limit(1),
            )
        return found[0] if found else None

    async def search_concepts(self, keywords: list[str], limit: int = 5) -> list[ConceptRecord]:
        terms = [k for k in keywords if k]
        if not terms:
            return []
        async with self._db.session() as session:
            return await self._concepts(
                session,
                select(ConceptModel)
                .where(or_(*(ConceptModel.name.ilike(f"%{term}%") for term in terms)))
                .order_by(ConceptModel.created_at)
                .limit(limit),
            )

    async def list_concepts(
        self,
        subject_area: str | None = None,
        grade_band: str | None = None,
    ) -> list[ConceptRecord]:
        stmt = select(ConceptModel).order_by(ConceptModel.created_at)
        if subject_area is not None:
            stmt = stmt.where(ConceptModel.subject_area == subject_area)
        if grade_band is not None:
            stmt = stmt.where(ConceptModel.grade_band == grade_band)
        async with self._db.session() as session:
            return await self._concepts(session, stmt)

    async def add_prerequisite_edge(self, concept_id: str, prerequisite_id: str) -> None:
        async with self._db.session() as session:
            await session.execute(
                insert(ConceptPrerequisiteModel)
                .values(concept_id=concept_id, prerequisite_id=prerequisite_id)
                .on_conflict_do_nothing()
            )

    async def prerequisite_graph(self) -> dict[str, list[str]]:
        async with self._db.session() as session:
            ids = (await session.execute(select(ConceptModel.id))).scalars().all()
            return await self._prerequisites_for(session, list(ids))

    # Mastery ------------------------------------------------------------------

    async def get_mastery(self, user_id: str, concept_id: str) -> MasteryRecord | None:
        async with self._db.session() as session:
            row = await session.scalar(
                select(UserConceptMasteryModel).where(
                    UserConceptMasteryModel.user_id == user_id,
                    UserConceptMasteryModel.concept_id == concept_id,
                )
            )
        return _mastery(row) if row else None

    async def list_mastery(self, user_id: str) -> list[MasteryRecord]:
        async with self._db.session() as session:
            rows = (
                await session.execute(
                    select(UserConceptMasteryModel).where(
                        UserConceptMasteryModel.user_id == user_id
                    )
                )
            ).scalars().all()
        return [_mastery(r) for r in rows]

    @asynccontextmanager
    async def mastery_transaction(
        self, user_id: str, concept_id: str
    ) -> AsyncIterator[MasteryRecord]:
        async with self._db.session() as session:
            await session.execute(
                insert(UserConceptMasteryModel)
                .values(user_id=user_id, concept_id=concept_id, mastery_level=0.0, history=[])
                .on_conflict_do_nothing(index_elements=["user_id", "concept_id"])
            )
            row = await session.scalar(
                select(UserConceptMasteryModel)
                .where(
                    UserConceptMasteryModel.user_id == user_id,
                    UserConceptMasteryModel.concept_id == concept_id,
                )
                .with_for_update()
            )
            record = _mastery(row)
            yield record
            row.mastery_level = record.mastery_level
            row.last_practiced = record.last_practiced
            row.history = list(record.history)
            row.bkt = dict(record.bkt) if record.bkt else None

    # Review schedules -----------------------------------------------------------

    async def get_review_schedule(
        self, user_id: str, concept_id: str
    ) -> ReviewScheduleRecord | None:
        async with self._db.session() as session:
            row = await session.scalar(
                select(ReviewScheduleModel).where(
                    ReviewScheduleModel.user_id == user_id,
                    ReviewScheduleModel.concept_id == concept_id,
                )
            )
        return _schedule(row) if row else None

    async def create_review_schedule(self, schedule: ReviewScheduleRecord) -> bool:
        async with self._db.session() as session:
            result = await session.execute(
                insert(ReviewScheduleModel)
                .values(
                    user_id=schedule.user_id,
                    concept_id=schedule.concept_id,
                    next_review_at=schedule.next_review_at,
                    interval=schedule.interval,
                    ease_factor=schedule.ease_factor,
                    repetitions=schedule.repetitions,
                )
                .on_conflict_do_nothing(index_elements=["user_id", "concept_id"])
                .returning(ReviewScheduleModel.id)
            )
            created = result.scalar_one_or_none() is not None
        return created

    @asynccontextmanager
    async def review_transaction(
        self, user_id: str, concept_id: str
    ) -> AsyncIterator[ReviewScheduleRecord]:
        async with self._db.session() as session:
            await session.execute(
                insert(ReviewScheduleModel)
                .values(user_id=user_id, concept_id=concept_id, next_review_at=utc_now())
                .on_conflict_do_nothing(index_elements=["user_id", "concept_id"])
            )
            row = await session.scalar(
                select(ReviewScheduleModel)
                .where(
                    ReviewScheduleModel.user_id == user_id,
                    ReviewScheduleModel.concept_id == concept_id,
                )
                .with_for_update()
            )
            record = _schedule(row)
            yield record
            row.next_review_at = record.next_review_at
            row.interval = record.interval
            row.ease_factor = record.ease_factor
            row.repetitions = record.repetitions
            row.last_quality = record.last_quality
            row.last_reviewed_at = record.last_reviewed_at

    async def list_due_reviews(
        self,
        user_id: str,
        now: datetime,
        limit: int = 10,
        subject_area: str | None = None,
    ) -> list[tuple[ReviewScheduleRecord, ConceptRecord]]:
        stmt = (
            select(ReviewScheduleModel, ConceptModel)
            .join(ConceptModel, ConceptModel.id == ReviewScheduleModel.concept_id)
            .where(
                and_(
                    ReviewScheduleModel.user_id == user_id,
                    ReviewScheduleModel.next_review_at <= now,
                )
            )
            .order_by(ReviewScheduleModel.next_review_at)
            .limit(limit)
        )
        if subject_area is not None:
            stmt = stmt.where(ConceptModel.subject_area == subject_area)

        async with self._db.session() as session:
            rows = (await session.execute(stmt)).all()
            edges = await self._prerequisites_for(session, [c.id for _, c in rows])
        return [(_schedule(s), _concept(c, edges.get(c.id))) for s, c in rows]

    # Transcript -----------------------------------------------------------------

    async def add_transcript_entry(self, entry: TranscriptRecord) -> TranscriptRecord:
        async with self._db.session() as session:
            session.add(
                TranscriptEntryModel(
                    id=entry.id,
                    user_id=entry.user_id,
                    activity_name=entry.activity_name,
                    mapped_subject=entry.mapped_subject,
                    credits_earned=entry.credits_earned,
                    notes=entry.notes,
                    date_completed=entry.date_completed,
                )
            )
        return entry

    async def list_transcript_entries(
        self, user_id: str, limit: int | None = None
    ) -> list[TranscriptRecord]:
        stmt = (
            select(TranscriptEntryModel)
            .where(TranscriptEntryModel.user_id == user_id)
            .order_by(TranscriptEntryModel.date_completed.desc())
        )
        if limit:
            stmt = stmt.limit(limit)
        async with self._db.session() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [_transcript(r) for r in rows]

    # Learning gaps --------------------------------------------------------------

    async def find_learning_gap(
        self, user_id: str, concept_id: str
    ) -> LearningGapRecord | None:
        async with self._db.session() as session:
            row = await session.scalar(
                select(LearningGapModel)
                .where(
                    LearningGapModel.user_id == user_id,
                    LearningGapModel.concept_id == concept_id,
                )
                .limit(1)
            )
        return _gap(row) if row else None

    async def save_learning_gap(self, gap: LearningGapRecord) -> LearningGapRecord:
        async with self._db.session() as session:
            await session.merge(
                LearningGapModel(
                    id=gap.id,
                    user_id=gap.user_id,
                    concept_id=gap.concept_id,
                    severity=GapSeverity(gap.severity).value,
                    detected_at=gap.detected_at,
                    addressed=gap.addressed,
                )
            )
        return gap

    # Reflections ----------------------------------------------------------------

    def _reflection_row(self, reflection: ReflectionRecord) -> ReflectionEntryModel:
        return ReflectionEntryModel(
            id=reflection.id,
            user_id=reflection.user_id,
            type=ReflectionType(reflection.type).value,
            activity_summary=reflection.activity_summary,
            prompt_used=reflection.prompt_used,
            dimension=reflection.dimension,
            student_response=reflection.student_response,
            ai_follow_up=reflection.ai_follow_up,
            insight_score=reflection.insight_score,
            created_at=reflection.created_at,
        )

    async def add_reflection(self, reflection: ReflectionRecord) -> ReflectionRecord:
        async with self._db.session() as session:
            session.add(self._reflection_row(reflection))
        return reflection

    async def get_reflection(self, reflection_id: str) -> ReflectionRecord | None:
        async with self._db.session() as session:
            row = await session.get(ReflectionEntryModel, reflection_id)
        return _reflection(row) if row else None

    async def update_reflection(self, reflection: ReflectionRecord) -> ReflectionRecord:
        async with self._db.session() as session:
            await session.merge(self._reflection_row(reflection))
        return reflection

    # Opportunities --------------------------------------------------------------

    async def add_opportunity(self, opportunity: OpportunityRecord) -> OpportunityRecord:
        async with self._db.session() as session:
            session.add(
                OpportunityModel(
                    id=opportunity.id,
                    title=opportunity.title,
                    type=opportunity.type,
                    description=opportunity.description,
                    age_range=opportunity.age_range,
                    matched_interests=list(opportunity.matched_interests),
                    deadline=opportunity.deadline,
                    created_at=opportunity.created_at,
                )
            )
        return opportunity

    async def list_opportunities(
        self,
        age_range: str | None = None,
        interests: list[str] | None = None,
        limit: int = 5,
    ) -> list[OpportunityRecord]:
        stmt = select(OpportunityModel).order_by(OpportunityModel.created_at.desc()).limit(limit)
        if age_range is not None:
            stmt = stmt.where(OpportunityModel.age_range == age_range)
        if interests:
            stmt = stmt.where(OpportunityModel.matched_interests.overlap(list(interests)))
        async with self._db.session() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [_opportunity(r) for r in rows]

    async def find_opportunities_for_activities(
        self,
        keywords: str,
        now: datetime,
        limit: int = 3,
    ) -> list[OpportunityRecord]:
        conditions = [OpportunityModel.deadline >= now]
        if keywords:
            pattern = f"%{keywords}%"
            conditions.append(OpportunityModel.description.ilike(pattern))
            conditions.append(OpportunityModel.title.ilike(pattern))
        stmt = (
            select(OpportunityModel)
            .where(or_(*conditions))
            .order_by(OpportunityModel.deadline.asc().nulls_last())
            .limit(limit)
        )
        async with self._db.session() as session:
            rows = (await session.execute(stmt)).scalars().all()
        logger.debug("Found %d opportunities for keywords %r", len(rows), keywords)
        return [_opportunity(r) for r in rows]

