# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""In-process store implementations.

Used by tests and single-process deployments. Mastery and review writes are
serialized with one ``asyncio.Lock`` per (user, concept) key; records are
copied in and out so callers never alias stored state.
"""

import asyncio
import copy
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator

from src.core.memory.stores.base import (
    ConceptRecord,
    JobNotFoundError,
    JobRecord,
    JobStatus,
    JobStore,
    LearningGapRecord,
    LearningStore,
    MasteryRecord,
    OpportunityRecord,
    ReflectionRecord,
    ReviewScheduleRecord,
    TranscriptRecord,
    check_transition,
)
from src.utils.datetime import ensure_utc, utc_now

_Key = tuple[str, str]


class _KeyedLocks:
    """Lazily created asyncio locks, one per key."""

    def __init__(self) -> None:
        self._locks: dict[_Key, asyncio.Lock] = defaultdict(asyncio.Lock)

    def get(self, key: _Key) -> asyncio.Lock:
        return self._locks[key]


class InMemoryLearningStore(LearningStore):
    """Dict-backed LearningStore."""

    def __init__(self) -> None:
        self._concepts: dict[str, ConceptRecord] = {}
        self._prerequisites: dict[str, list[str]] = defaultdict(list)
        self._mastery: dict[_Key, MasteryRecord] = {}
        self._reviews: dict[_Key, ReviewScheduleRecord] = {}
        self._transcripts: list[TranscriptRecord] = []
        self._gaps: dict[str, LearningGapRecord] = {}
        self._reflections: dict[str, ReflectionRecord] = {}
        self._opportunities: list[OpportunityRecord] = []
        self._mastery_locks = _KeyedLocks()
        self._review_locks = _KeyedLocks()

    def _with_edges(self, concept: ConceptRecord) -> ConceptRecord:
        result = copy.deepcopy(concept)
        result.prerequisite_ids = list(self._prerequisites.get(concept.id, []))
        return result

    # Concepts -----------------------------------------------------------------

    async def add_concept(self, concept: ConceptRecord) -> ConceptRecord:
        stored = copy.deepcopy(concept)
        stored.prerequisite_ids = []
        self._concepts[stored.id] = stored
        return self._with_edges(stored)

    async def get_concept(self, concept_id: str) -> ConceptRecord | None:
        concept = self._concepts.get(concept_id)
        return self._with_edges(concept) if concept else None

    async def find_concept_by_name(self, name: str) -> ConceptRecord | None:
        for concept in self._concepts.values():
            if concept.name == name:
                return self._with_edges(concept)
        return None

    async def search_concepts(self, keywords: list[str], limit: int = 5) -> list[ConceptRecord]:
        lowered = [k.lower() for k in keywords if k]
        matches = [
            self._with_edges(c)
            for c in self._concepts.values()
            if any(k in c.name.lower() for k in lowered)
        ]
        return matches[:limit]

    async def list_concepts(
        self,
        subject_area: str | None = None,
        grade_band: str | None = None,
    ) -> list[ConceptRecord]:
        return [
            self._with_edges(c)
            for c in self._concepts.values()
            if (subject_area is None or c.subject_area == subject_area)
            and (grade_band is None or c.grade_band == grade_band)
        ]

    async def add_prerequisite_edge(self, concept_id: str, prerequisite_id: str) -> None:
        edges = self._prerequisites[concept_id]
        if prerequisite_id not in edges:
            edges.append(prerequisite_id)

    async def prerequisite_graph(self) -> dict[str, list[str]]:
        return {cid: list(self._prerequisites.get(cid, [])) for cid in self._concepts}

    # Mastery ------------------------------------------------------------------

    async def get_mastery(self, user_id: str, concept_id: str) -> MasteryRecord | None:
        record = self._mastery.get((user_id, concept_id))
        return copy.deepcopy(record) if record else None

    async def list_mastery(self, user_id: str) -> list[MasteryRecord]:
        return [copy.deepcopy(r) for (uid, _), r in self._mastery.items() if uid == user_id]

    @asynccontextmanager
    async def mastery_transaction(
        self, user_id: str, concept_id: str
    ) -> AsyncIterator[MasteryRecord]:
        key = (user_id, concept_id)
        async with self._mastery_locks.get(key):
            existing = self._mastery.get(key)
            record = (
                copy.deepcopy(existing)
                if existing
                else MasteryRecord(user_id=user_id, concept_id=concept_id)
            )
            yield record
            self._mastery[key] = copy.deepcopy(record)

    # Review schedules -----------------------------------------------------------

    async def get_review_schedule(
        self, user_id: str, concept_id: str
    ) -> ReviewScheduleRecord | None:
        record = self._reviews.get((user_id, concept_id))
        return copy.deepcopy(record) if record else None

    async def create_review_schedule(self, schedule: ReviewScheduleRecord) -> bool:
        key = (schedule.user_id, schedule.concept_id)
        async with self._review_locks.get(key):
            if key in self._reviews:
                return False
            self._reviews[key] = copy.deepcopy(schedule)
            return True

    @asynccontextmanager
    async def review_transaction(
        self, user_id: str, concept_id: str
    ) -> AsyncIterator[ReviewScheduleRecord]:
        key = (user_id, concept_id)
        async with self._review_locks.get(key):
            existing = self._reviews.get(key)
            record = (
                copy.deepcopy(existing)
                if existing
                else ReviewScheduleRecord(user_id=user_id, concept_id=concept_id)
            )
            yield record
            self._reviews[key] = copy.deepcopy(record)

    async def list_due_reviews(
        self,
        user_id: str,
        now: datetime,
        limit: int = 10,
        subject_area: str | None = None,
    ) -> list[tuple[ReviewScheduleRecord, ConceptRecord]]:
        due = []
        for (uid, concept_id), schedule in self._reviews.items():
            if uid != user_id or ensure_utc(schedule.next_review_at) > now:
                continue
            concept = self._concepts.get(concept_id)
            if concept is None:
                continue
            if subject_area is not None and concept.subject_area != subject_area:
                continue
            due.append((copy.deepcopy(schedule), self._with_edges(concept)))
        due.sort(key=lambda pair: ensure_utc(pair[0].next_review_at))
        return due[:limit]

    # Transcript -----------------------------------------------------------------

    async def add_transcript_entry(self, entry: TranscriptRecord) -> TranscriptRecord:
        self._transcripts.append(copy.deepcopy(entry))
        return entry

    async def list_transcript_entries(
        self, user_id: str, limit: int | None = None
    ) -> list[TranscriptRecord]:
        entries = [copy.deepcopy(e) for e in self._transcripts if e.user_id == user_id]
        entries.sort(key=lambda e: ensure_utc(e.date_completed), reverse=True)
        return entries[:limit] if limit else entries

    # Learning gaps --------------------------------------------------------------

    async def find_learning_gap(
        self, user_id: str, concept_id: str
    ) -> LearningGapRecord | None:
        for gap in self._gaps.values():
            if gap.user_id == user_id and gap.concept_id == concept_id:
                return copy.deepcopy(gap)
        return None

    async def save_learning_gap(self, gap: LearningGapRecord) -> LearningGapRecord:
        self._gaps[gap.id] = copy.deepcopy(gap)
        return gap

    # Reflections ----------------------------------------------------------------

    async def add_reflection(self, reflection: ReflectionRecord) -> ReflectionRecord:
        self._reflections[reflection.id] = copy.deepcopy(reflection)
        return reflection

    async def get_reflection(self, reflection_id: str) -> ReflectionRecord | None:
        record = self._reflections.get(reflection_id)
        return copy.deepcopy(record) if record else None

    async def update_reflection(self, reflection: ReflectionRecord) -> ReflectionRecord:
        self._reflections[reflection.id] = copy.deepcopy(reflection)
        return reflection

    # Opportunities --------------------------------------------------------------

    async def add_opportunity(self, opportunity: OpportunityRecord) -> OpportunityRecord:
        self._opportunities.append(copy.deepcopy(opportunity))
        return opportunity

    async def list_opportunities(
        self,
        age_range: str | None = None,
        interests: list[str] | None = None,
        limit: int = 5,
    ) -> list[OpportunityRecord]:
        wanted = set(interests or [])
        matches = [
            copy.deepcopy(o)
            for o in self._opportunities
            if (age_range is None or o.age_range == age_range)
            and (not wanted or wanted.intersection(o.matched_interests))
        ]
        matches.sort(key=lambda o: ensure_utc(o.created_at), reverse=True)
        return matches[:limit]

    async def find_opportunities_for_activities(
        self,
        keywords: str,
        now: datetime,
        limit: int = 3,
    ) -> list[OpportunityRecord]:
        needle = keywords.lower()
        matches = [
            copy.deepcopy(o)
            for o in self._opportunities
            if (o.deadline is not None and ensure_utc(o.deadline) >= now)
            or (needle and (needle in o.description.lower() or needle in o.title.lower()))
        ]
        matches.sort(key=lambda o: (o.deadline is None, ensure_utc(o.deadline) if o.deadline else now))
        return matches[:limit]


class InMemoryJobStore(JobStore):
    """Dict-backed JobStore guarded by a single lock."""

    def __init__(self) -> None:
        self._jobs: dict[str, JobRecord] = {}
        self._lock = asyncio.Lock()

    def _require(self, job_id: str) -> JobRecord:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    async def create_job(self, job: JobRecord) -> JobRecord:
        async with self._lock:
            self._jobs[job.id] = copy.deepcopy(job)
        return job

    async def get_job(self, job_id: str) -> JobRecord | None:
        job = self._jobs.get(job_id)
        return copy.deepcopy(job) if job else None

    async def list_pending_jobs(self, limit: int) -> list[JobRecord]:
        pending = [j for j in self._jobs.values() if j.status == JobStatus.PENDING]
        pending.sort(key=lambda j: ensure_utc(j.created_at))
        return [copy.deepcopy(j) for j in pending[:limit]]

    async def claim_job(self, job_id: str) -> JobRecord | None:
        async with self._lock:
            job = self._require(job_id)
            if job.status != JobStatus.PENDING:
                return None
            job.status = JobStatus.PROCESSING
            job.started_at = utc_now()
            return copy.deepcopy(job)

    async def set_job_intent(self, job_id: str, intent: str) -> None:
        async with self._lock:
            self._require(job_id).intent = intent

    async def complete_job(
        self,
        job_id: str,
        result: str,
        metadata: dict[str, Any] | None = None,
    ) -> JobRecord:
        async with self._lock:
            job = self._require(job_id)
            check_transition(job_id, job.status, JobStatus.COMPLETED)
            job.status = JobStatus.COMPLETED
            job.result = result
            job.completed_at = utc_now()
            if metadata is not None:
                job.job_metadata = {**job.job_metadata, **copy.deepcopy(metadata)}
            return copy.deepcopy(job)

    async def fail_job(self, job_id: str, error: str) -> JobRecord:
        async with self._lock:
            job = self._require(job_id)
            check_transition(job_id, job.status, JobStatus.FAILED)
            job.status = JobStatus.FAILED
            job.error = error
            job.completed_at = utc_now()
            return copy.deepcopy(job)

    async def delete_finished_jobs(self, older_than: datetime) -> int:
        async with self._lock:
            stale = [
                job_id
                for job_id, job in self._jobs.items()
                if job.status.is_terminal and ensure_utc(job.created_at) < older_than
            ]
            for job_id in stale:
                del self._jobs[job_id]
            return len(stale)
