# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Learning and job persistence contracts with in-memory implementations.

The SQLAlchemy implementations live in
``src.infrastructure.database.repositories``.
"""

from src.core.memory.stores.base import (
    ConceptRecord,
    GapSeverity,
    JobNotFoundError,
    JobRecord,
    JobStateError,
    JobStatus,
    JobStore,
    LearningGapRecord,
    LearningStore,
    MasteryRecord,
    OpportunityRecord,
    ReflectionRecord,
    ReflectionType,
    ReviewScheduleRecord,
    SourceType,
    TranscriptRecord,
    check_transition,
    new_id,
)
from src.core.memory.stores.memory import InMemoryJobStore, InMemoryLearningStore

__all__ = [
    "ConceptRecord",
    "GapSeverity",
    "InMemoryJobStore",
    "InMemoryLearningStore",
    "JobNotFoundError",
    "JobRecord",
    "JobStateError",
    "JobStatus",
    "JobStore",
    "LearningGapRecord",
    "LearningStore",
    "MasteryRecord",
    "OpportunityRecord",
    "ReflectionRecord",
    "ReflectionType",
    "ReviewScheduleRecord",
    "SourceType",
    "TranscriptRecord",
    "check_transition",
    "new_id",
]
