# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Persistence contracts for the learning pipeline.

Two abstract stores sit between the domain code and the database:

- ``LearningStore``: concepts and their prerequisite graph, per-user mastery,
  review schedules, transcript entries, learning gaps, reflections and
  opportunities.
- ``JobStore``: durable records of asynchronous pipeline runs.

Mastery and review schedules are read-modify-written through async context
managers (``mastery_transaction`` / ``review_transaction``). Implementations
must serialize those per (user, concept) key so concurrent updates never lose
a delta, while different keys proceed independently.

Records are plain dataclasses so the domain layer never touches ORM objects.
"""

import uuid
from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from src.utils.datetime import utc_now


def new_id() -> str:
    """Generate a new string identifier."""
    return str(uuid.uuid4())


class SourceType(str, Enum):
    """Provenance of a concept or document, most trusted first."""

    PRIMARY = "PRIMARY"
    CURATED = "CURATED"
    SECONDARY = "SECONDARY"
    MAINSTREAM = "MAINSTREAM"


class GapSeverity(str, Enum):
    MILD = "MILD"
    MODERATE = "MODERATE"
    SEVERE = "SEVERE"


class ReflectionType(str, Enum):
    POST_ACTIVITY = "POST_ACTIVITY"
    REFLECT = "REFLECT"


class JobStatus(str, Enum):
    """Lifecycle of an asynchronous pipeline job.

    PENDING -> PROCESSING -> COMPLETED | FAILED. Terminal states never change.
    """

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)

    def can_transition_to(self, target: "JobStatus") -> bool:
        return target in _JOB_TRANSITIONS[self]


_JOB_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.PROCESSING, JobStatus.FAILED}),
    JobStatus.PROCESSING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
}


class JobNotFoundError(Exception):
    """Raised when a job id does not exist.

    Attributes:
        job_id: The missing job id.
        message: Error description.
    """

    def __init__(self, job_id: str):
        self.job_id = job_id
        self.message = f"Job not found: {job_id}"
        super().__init__(self.message)


class JobStateError(Exception):
    """Raised on an illegal job status transition.

    Attributes:
        job_id: The job being transitioned.
        current: Status the job is in.
        target: Status that was requested.
    """

    def __init__(self, job_id: str, current: JobStatus, target: JobStatus):
        self.job_id = job_id
        self.current = current
        self.target = target
        self.message = (
            f"Illegal transition for job {job_id}: {current.value} -> {target.value}"
        )
        super().__init__(self.message)


def check_transition(job_id: str, current: JobStatus, target: JobStatus) -> None:
    """Raise JobStateError unless current -> target is allowed."""
    if not current.can_transition_to(target):
        raise JobStateError(job_id, current, target)


# =============================================================================
# Records
# =============================================================================


@dataclass
class ConceptRecord:
    """A unit of knowledge in the concept graph."""

    name: str
    description: str = ""
    subject_area: str = ""
    grade_band: str | None = None
    source_type: SourceType = SourceType.CURATED
    id: str = field(default_factory=new_id)
    prerequisite_ids: list[str] = field(default_factory=list)


@dataclass
class MasteryRecord:
    """One learner's proficiency on one concept.

    Attributes:
        history: Mastery change log, oldest first.
        bkt: Stored knowledge tracing parameters, None until first update.
    """

    user_id: str
    concept_id: str
    mastery_level: float = 0.0
    last_practiced: datetime | None = None
    history: list[dict[str, Any]] = field(default_factory=list)
    bkt: dict[str, float] | None = None


@dataclass
class ReviewScheduleRecord:
    """SM-2 state for one learner and concept."""

    user_id: str
    concept_id: str
    next_review_at: datetime = field(default_factory=utc_now)
    interval: int = 1
    ease_factor: float = 2.5
    repetitions: int = 0
    last_quality: int | None = None
    last_reviewed_at: datetime | None = None


@dataclass
class TranscriptRecord:
    """A credit-bearing activity on a learner's transcript.

    ``mapped_subject`` is a comma separated list such as
    ``"Chemistry: Fermentation, Math: Ratios"``.
    """

    user_id: str
    activity_name: str
    mapped_subject: str
    credits_earned: float = 0.5
    notes: str = ""
    date_completed: datetime = field(default_factory=utc_now)
    id: str = field(default_factory=new_id)


@dataclass
class LearningGapRecord:
    user_id: str
    concept_id: str
    severity: GapSeverity = GapSeverity.MODERATE
    detected_at: datetime = field(default_factory=utc_now)
    addressed: bool = False
    id: str = field(default_factory=new_id)


@dataclass
class ReflectionRecord:
    """A metacognitive reflection prompt and, later, the student's answer."""

    user_id: str
    type: ReflectionType
    activity_summary: str
    prompt_used: str
    dimension: str
    student_response: str | None = None
    ai_follow_up: str | None = None
    insight_score: float | None = None
    created_at: datetime = field(default_factory=utc_now)
    id: str = field(default_factory=new_id)


@dataclass
class OpportunityRecord:
    """A real-world opportunity (contest, service project, program)."""

    title: str
    type: str
    description: str
    age_range: str | None = None
    matched_interests: list[str] = field(default_factory=list)
    deadline: datetime | None = None
    created_at: datetime = field(default_factory=utc_now)
    id: str = field(default_factory=new_id)


@dataclass
class JobRecord:
    """Durable record of one asynchronous pipeline run.

    ``job_metadata`` holds the submission context (under ``"context"``)
    and, once finished, the run's intent, UI payload and stage records.
    """

    prompt: str
    session_id: str
    user_id: str | None = None
    status: JobStatus = JobStatus.PENDING
    intent: str | None = None
    result: str | None = None
    job_metadata: dict[str, Any] = field(default_factory=dict)
    error: str | None = None
    created_at: datetime = field(default_factory=utc_now)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    id: str = field(default_factory=new_id)


# =============================================================================
# Store contracts
# =============================================================================


class LearningStore(ABC):
    """Persistence capability for the mastery engine and agent nodes."""

    # Concepts -----------------------------------------------------------------

    @abstractmethod
    async def add_concept(self, concept: ConceptRecord) -> ConceptRecord:
        """Insert a concept (prerequisite_ids are ignored; use add_prerequisite_edge)."""

    @abstractmethod
    async def get_concept(self, concept_id: str) -> ConceptRecord | None: ...

    @abstractmethod
    async def find_concept_by_name(self, name: str) -> ConceptRecord | None:
        """Exact name lookup."""

    @abstractmethod
    async def search_concepts(self, keywords: list[str], limit: int = 5) -> list[ConceptRecord]:
        """Concepts whose name contains any keyword (case-insensitive)."""

    @abstractmethod
    async def list_concepts(
        self,
        subject_area: str | None = None,
        grade_band: str | None = None,
    ) -> list[ConceptRecord]:
        """Concepts in insertion order, with prerequisite_ids populated."""

    @abstractmethod
    async def add_prerequisite_edge(self, concept_id: str, prerequisite_id: str) -> None: ...

    @abstractmethod
    async def prerequisite_graph(self) -> dict[str, list[str]]:
        """Every concept id mapped to its direct prerequisite ids."""

    # Mastery ------------------------------------------------------------------

    @abstractmethod
    async def get_mastery(self, user_id: str, concept_id: str) -> MasteryRecord | None: ...

    @abstractmethod
    async def list_mastery(self, user_id: str) -> list[MasteryRecord]: ...

    @abstractmethod
    def mastery_transaction(
        self, user_id: str, concept_id: str
    ) -> AbstractAsyncContextManager[MasteryRecord]:
        """Exclusive read-modify-write access to one mastery record.

        Yields the stored record, or a fresh default one. Changes made to the
        yielded record are persisted when the block exits normally.
        """

    # Review schedules -----------------------------------------------------------

    @abstractmethod
    async def get_review_schedule(
        self, user_id: str, concept_id: str
    ) -> ReviewScheduleRecord | None: ...

    @abstractmethod
    async def create_review_schedule(self, schedule: ReviewScheduleRecord) -> bool:
        """Insert a schedule unless one exists for the key.

        Returns:
            True when created, False when a schedule was already present.
        """

    @abstractmethod
    def review_transaction(
        self, user_id: str, concept_id: str
    ) -> AbstractAsyncContextManager[ReviewScheduleRecord]:
        """Exclusive read-modify-write access to one review schedule."""

    @abstractmethod
    async def list_due_reviews(
        self,
        user_id: str,
        now: datetime,
        limit: int = 10,
        subject_area: str | None = None,
    ) -> list[tuple[ReviewScheduleRecord, ConceptRecord]]:
        """Schedules due at ``now`` or earlier, soonest first."""

    # Transcript -----------------------------------------------------------------

    @abstractmethod
    async def add_transcript_entry(self, entry: TranscriptRecord) -> TranscriptRecord: ...

    @abstractmethod
    async def list_transcript_entries(
        self, user_id: str, limit: int | None = None
    ) -> list[TranscriptRecord]:
        """Entries newest first."""

    # Learning gaps --------------------------------------------------------------

    @abstractmethod
    async def find_learning_gap(
        self, user_id: str, concept_id: str
    ) -> LearningGapRecord | None: ...

    @abstractmethod
    async def save_learning_gap(self, gap: LearningGapRecord) -> LearningGapRecord:
        """Insert or update a gap by id."""

    # Reflections ----------------------------------------------------------------

    @abstractmethod
    async def add_reflection(self, reflection: ReflectionRecord) -> ReflectionRecord: ...

    @abstractmethod
    async def get_reflection(self, reflection_id: str) -> ReflectionRecord | None: ...

    @abstractmethod
    async def update_reflection(self, reflection: ReflectionRecord) -> ReflectionRecord: ...

    # Opportunities --------------------------------------------------------------

    @abstractmethod
    async def add_opportunity(self, opportunity: OpportunityRecord) -> OpportunityRecord: ...

    @abstractmethod
    async def list_opportunities(
        self,
        age_range: str | None = None,
        interests: list[str] | None = None,
        limit: int = 5,
    ) -> list[OpportunityRecord]:
        """Newest first, optionally filtered by age range and any shared interest."""

    @abstractmethod
    async def find_opportunities_for_activities(
        self,
        keywords: str,
        now: datetime,
        limit: int = 3,
    ) -> list[OpportunityRecord]:
        """Opportunities with an upcoming deadline or mentioning the keywords.

        Ordered by deadline ascending, undated last.
        """


class JobStore(ABC):
    """Persistence capability for asynchronous jobs."""

    @abstractmethod
    async def create_job(self, job: JobRecord) -> JobRecord: ...

    @abstractmethod
    async def get_job(self, job_id: str) -> JobRecord | None: ...

    @abstractmethod
    async def list_pending_jobs(self, limit: int) -> list[JobRecord]:
        """PENDING jobs, oldest first."""

    @abstractmethod
    async def claim_job(self, job_id: str) -> JobRecord | None:
        """Atomically move a PENDING job to PROCESSING.

        Returns:
            The claimed job, or None if another worker took it first.
        """

    @abstractmethod
    async def set_job_intent(self, job_id: str, intent: str) -> None: ...

    @abstractmethod
    async def complete_job(
        self,
        job_id: str,
        result: str,
        metadata: dict[str, Any] | None = None,
    ) -> JobRecord:
        """PROCESSING -> COMPLETED.

        Raises:
            JobNotFoundError: Unknown job id.
            JobStateError: Job is not PROCESSING.
        """

    @abstractmethod
    async def fail_job(self, job_id: str, error: str) -> JobRecord:
        """PENDING or PROCESSING -> FAILED.

        Raises:
            JobNotFoundError: Unknown job id.
            JobStateError: Job is already terminal.
        """

    @abstractmethod
    async def delete_finished_jobs(self, older_than: datetime) -> int:
        """Delete COMPLETED/FAILED jobs created before ``older_than``."""
