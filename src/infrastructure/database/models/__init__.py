# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""SQLAlchemy ORM models."""

from src.infrastructure.database.models.base import Base, TimestampMixin
from src.infrastructure.database.models.jobs import AIJobModel
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

__all__ = [
    "AIJobModel",
    "Base",
    "ConceptModel",
    "ConceptPrerequisiteModel",
    "LearningGapModel",
    "OpportunityModel",
    "ReflectionEntryModel",
    "ReviewScheduleModel",
    "TimestampMixin",
    "TranscriptEntryModel",
    "UserConceptMasteryModel",
]
