# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Educational theories package.

Pure learning-science algorithms used by the mastery engine:
- SpacedRepetition: SM-2 review scheduling
- ZPD: Zone of Proximal Development concept selection with mastery decay
- KnowledgeTracing: Bayesian Knowledge Tracing probability of mastery
"""

from src.core.educational.theories.knowledge_tracing import (
    DEFAULT_BKT,
    BKTParams,
    bkt_update,
    observe,
)
from src.core.educational.theories.spaced_repetition import (
    SM2Result,
    clamp_quality,
    quality_to_mastery_delta,
    sm2_schedule,
)
from src.core.educational.theories.zpd import (
    DECAY_HALF_LIFE_DAYS,
    MASTERY_THRESHOLD,
    PREREQ_READINESS,
    ConceptSnapshot,
    ZPDConcept,
    build_mastery_map,
    decayed_mastery,
    prerequisite_readiness,
    select_zpd_concepts,
    zpd_priority,
)

__all__ = [
    # SM-2
    "SM2Result",
    "clamp_quality",
    "quality_to_mastery_delta",
    "sm2_schedule",
    # ZPD
    "DECAY_HALF_LIFE_DAYS",
    "MASTERY_THRESHOLD",
    "PREREQ_READINESS",
    "ConceptSnapshot",
    "ZPDConcept",
    "build_mastery_map",
    "decayed_mastery",
    "prerequisite_readiness",
    "select_zpd_concepts",
    "zpd_priority",
    # BKT
    "BKTParams",
    "DEFAULT_BKT",
    "bkt_update",
    "observe",
]
