# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Educational theories and pedagogical framework.

The algorithms behind the mastery engine:
- Spaced Repetition: SM-2 review scheduling
- ZPD (Zone of Proximal Development): which concepts are learnable next
- Knowledge Tracing: Bayesian estimate of concept mastery
"""

from src.core.educational.theories import (
    BKTParams,
    ConceptSnapshot,
    SM2Result,
    ZPDConcept,
    quality_to_mastery_delta,
    select_zpd_concepts,
    sm2_schedule,
)

__all__ = [
    "BKTParams",
    "ConceptSnapshot",
    "SM2Result",
    "ZPDConcept",
    "quality_to_mastery_delta",
    "select_zpd_concepts",
    "sm2_schedule",
]
