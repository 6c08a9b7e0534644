# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Memory system for personalized learning.

- stores: persistence contracts (concepts, mastery, schedules, jobs)
- mastery: the mastery engine (SM-2 reviews, ZPD, mastery updates)
- semantic_cache: embedding-similarity response cache
- rag: document retrieval for investigations

Example:
    from src.core.memory import InMemoryLearningStore, MasteryEngine

    engine = MasteryEngine(store=InMemoryLearningStore())
    due = await engine.get_due_reviews("user-1")
"""

from src.core.memory.mastery import (
    DueReview,
    MasteryEngine,
    MasteryError,
    PrerequisiteCycleError,
    ReviewOutcome,
)
from src.core.memory.semantic_cache import CacheHit, CacheStats, SemanticCache
from src.core.memory.stores import (
    InMemoryJobStore,
    InMemoryLearningStore,
    JobStore,
    LearningStore,
)

__all__ = [
    "CacheHit",
    "CacheStats",
    "DueReview",
    "InMemoryJobStore",
    "InMemoryLearningStore",
    "JobStore",
    "LearningStore",
    "MasteryEngine",
    "MasteryError",
    "PrerequisiteCycleError",
    "ReviewOutcome",
    "SemanticCache",
]
