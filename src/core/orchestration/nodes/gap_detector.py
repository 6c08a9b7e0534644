# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Learning gap detection.

Compares the credits a student has logged per subject with the subjects
expected for their grade band. Subjects below half a credit become
LearningGap rows (one per user and concept) and produce a short nudge that
the executor appends to the reply.
"""

import logging
import re
from collections import defaultdict
from typing import Any

from src.core.config.tutor import TutorConfig
from src.core.memory.stores.base import (
    ConceptRecord,
    GapSeverity,
    LearningGapRecord,
    LearningStore,
    SourceType,
    TranscriptRecord,
)
from src.core.orchestration.states.pipeline import PipelineState, stage_record
from src.utils.datetime import utc_now

logger = logging.getLogger(__name__)

GRADE_BANDS = ("K-2", "3-5", "6-8", "9-12")
MIN_CREDITS = 0.5

_GRADE_NUMBER = re.compile(r"\d{1,2}")


def grade_band(grade_level: str | None) -> str | None:
    """Resolve a grade string to a band.

    A band label inside the string wins ("Grade 6-8"); otherwise "K" or the
    first grade number decides ("7" -> "6-8").
    """
    if not grade_level:
        return None
    upper = grade_level.strip().upper()
    for band in GRADE_BANDS:
        if band in upper:
            return band

    if upper in ("K", "KG") or upper.startswith("KINDER"):
        return "K-2"
    match = _GRADE_NUMBER.search(upper)
    if not match:
        return None
    grade = int(match.group())
    if grade <= 2:
        return "K-2"
    if grade <= 5:
        return "3-5"
    if grade <= 8:
        return "6-8"
    if grade <= 12:
        return "9-12"
    return None


def leading_subjects(mapped_subject: str) -> list[str]:
    """Subjects named by a mapping such as "Chemistry: Fermentation, Math: Ratios"."""
    subjects: list[str] = []
    for segment in mapped_subject.split(","):
        subject = segment.split(":", 1)[0].strip()
        if subject and subject.casefold() not in (s.casefold() for s in subjects):
            subjects.append(subject)
    return subjects


def credits_by_subject(entries: list[TranscriptRecord]) -> dict[str, float]:
    """Total credits keyed by casefolded subject name."""
    totals: dict[str, float] = defaultdict(float)
    for entry in entries:
        subjects = leading_subjects(entry.mapped_subject or "") or ["Unknown"]
        for subject in subjects:
            totals[subject.casefold()] += entry.credits_earned or 0.0
    return dict(totals)


def build_nudge(gaps: list[str], interests: list[str]) -> str:
    lowered = [i.lower() for i in interests]
    overlap = [
        gap for gap in gaps if any(i in gap.lower() or gap.lower() in i for i in lowered)
    ]
    if overlap:
        return (
            f"I noticed we haven't logged much {', '.join(overlap)} yet. "
            "Want to add a small project to grow there?"
        )
    return f"We haven't logged credits for {', '.join(gaps)}. Want a quick idea to close that gap?"


class GapDetector:
    """Gap detector stage, run after the UI planner."""

    def __init__(self, config: TutorConfig, store: LearningStore) -> None:
        self._config = config
        self._store = store

    async def detect(self, user_id: str, band: str) -> list[str]:
        """Find and record the expected subjects a learner is behind on."""
        expectations = self._config.grade_expectations.get(band) or []
        if not expectations:
            return []

        totals = credits_by_subject(await self._store.list_transcript_entries(user_id))
        gaps = [s for s in expectations if totals.get(s.casefold(), 0.0) < MIN_CREDITS]

        for subject in gaps:
            await self._record_gap(user_id, subject, band)
        return gaps

    async def _record_gap(self, user_id: str, subject: str, band: str) -> None:
        concept = await self._store.find_concept_by_name(subject)
        if concept is None:
            concept = await self._store.add_concept(
                ConceptRecord(
                    name=subject,
                    description=f"{subject} mastery for grade band {band}",
                    subject_area=subject,
                    source_type=SourceType.CURATED,
                )
            )

        gap = await self._store.find_learning_gap(user_id, concept.id)
        if gap is None:
            gap = LearningGapRecord(
                user_id=user_id,
                concept_id=concept.id,
                severity=GapSeverity.MODERATE,
            )
        else:
            gap.detected_at = utc_now()
            gap.addressed = False
        await self._store.save_learning_gap(gap)

    async def __call__(self, state: PipelineState) -> dict[str, Any]:
        user_id = state.get("user_id")
        band = grade_band(state.get("grade_level"))
        if not user_id or not band:
            return {"stages": [stage_record("gap_detector", "skipped", "no user or grade band")]}

        gaps = await self.detect(user_id, band)
        if not gaps:
            return {
                "detected_gaps": [],
                "gap_nudge": None,
                "stages": [stage_record("gap_detector", "ok", f"{band}: no gaps")],
            }

        logger.info("Detected %d learning gaps for user %s (%s)", len(gaps), user_id, band)
        return {
            "detected_gaps": gaps,
            "gap_nudge": build_nudge(gaps, list(state.get("interests") or [])),
            "stages": [stage_record("gap_detector", "ok", f"{band}: {', '.join(gaps)}")],
        }
