# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Zone of Proximal Development (ZPD) concept selection.

The ZPD, after Lev Vygotsky, is the set of concepts a learner is ready to
learn next: not yet mastered, but with prerequisites mostly mastered.

Selection works over a snapshot of the concept graph joined with the
learner's mastery records:

- Mastery decays exponentially without practice (half-life 30 days).
- A concept with decayed mastery >= 0.7 is considered mastered and skipped.
- Prerequisite readiness is the mean decayed mastery of the direct
  prerequisites (1.0 with none); below 0.7 the concept is not reachable.
- Survivors are ranked by a weighted priority of readiness, remaining gap
  and leverage (how many concepts depend on this one).

Readiness only looks at direct prerequisites, so a cyclic graph cannot make
selection loop.
"""

from dataclasses import dataclass, field
from datetime import datetime

from src.utils.datetime import elapsed_days

MASTERY_THRESHOLD = 0.7
PREREQ_READINESS = 0.7
DECAY_HALF_LIFE_DAYS = 30.0

READINESS_WEIGHT = 0.6
GAP_WEIGHT = 0.3
LEVERAGE_WEIGHT = 0.1


@dataclass
class ConceptSnapshot:
    """A concept joined with one learner's raw mastery.

    Attributes:
        concept_id: Concept identifier.
        name: Concept name.
        description: Concept description.
        subject_area: Subject the concept belongs to.
        grade_band: Grade band, if any.
        prerequisite_ids: Direct prerequisite concept ids.
        dependent_count: Number of concepts listing this one as prerequisite.
        raw_mastery: Stored mastery level (0-1), 0 when never practiced.
        last_practiced: Last practice time, None when never practiced.
        bkt_probability: Knowledge tracing P(L) for prompt context.
    """

    concept_id: str
    name: str
    description: str = ""
    subject_area: str = ""
    grade_band: str | None = None
    prerequisite_ids: list[str] = field(default_factory=list)
    dependent_count: int = 0
    raw_mastery: float = 0.0
    last_practiced: datetime | None = None
    bkt_probability: float | None = None


@dataclass
class ZPDConcept:
    """A concept inside the learner's ZPD, ready to be recommended."""

    concept_id: str
    name: str
    description: str
    subject_area: str
    grade_band: str | None
    current_mastery: float
    prerequisite_readiness: float
    priority: float


def decayed_mastery(
    raw_mastery: float,
    last_practiced: datetime | None,
    now: datetime | None = None,
) -> float:
    """Apply the forgetting curve to a stored mastery level.

    Args:
        raw_mastery: Stored mastery level.
        last_practiced: Last practice time; None means never practiced.
        now: Reference time, defaults to the current UTC time.

    Returns:
        raw * 0.5 ** (days_since / 30), or raw when never practiced or
        practiced in the future.
    """
    if last_practiced is None:
        return raw_mastery
    days = elapsed_days(last_practiced, now)
    if days <= 0:
        return raw_mastery
    return raw_mastery * 0.5 ** (days / DECAY_HALF_LIFE_DAYS)


def prerequisite_readiness(
    prerequisite_ids: list[str],
    mastery_by_concept: dict[str, float],
) -> float:
    """Mean decayed mastery of the direct prerequisites (unknown counts as 0)."""
    if not prerequisite_ids:
        return 1.0
    total = sum(mastery_by_concept.get(pid, 0.0) for pid in prerequisite_ids)
    return total / len(prerequisite_ids)


def zpd_priority(
    readiness: float,
    current_mastery: float,
    dependent_count: int,
    max_dependents: int,
) -> float:
    """Weighted recommendation priority, higher is better."""
    leverage = dependent_count / max(max_dependents, 1)
    return (
        READINESS_WEIGHT * readiness
        + GAP_WEIGHT * (1 - current_mastery)
        + LEVERAGE_WEIGHT * leverage
    )


def select_zpd_concepts(
    candidates: list[ConceptSnapshot],
    mastery_by_concept: dict[str, float],
    limit: int | None = None,
) -> list[ZPDConcept]:
    """Select and rank the concepts inside the ZPD.

    Args:
        candidates: Concepts eligible for recommendation, in input order.
        mastery_by_concept: Decayed mastery for every known concept, used for
            prerequisite readiness (prerequisites may fall outside candidates).
        limit: Optional maximum number of results.

    Returns:
        ZPD concepts sorted by priority descending; ties keep input order.
    """
    max_dependents = max((c.dependent_count for c in candidates), default=0)

    selected: list[ZPDConcept] = []
    for concept in candidates:
        current = mastery_by_concept.get(concept.concept_id, 0.0)
        if current >= MASTERY_THRESHOLD:
            continue

        readiness = prerequisite_readiness(concept.prerequisite_ids, mastery_by_concept)
        if readiness < PREREQ_READINESS:
            continue

        selected.append(
            ZPDConcept(
                concept_id=concept.concept_id,
                name=concept.name,
                description=concept.description,
                subject_area=concept.subject_area,
                grade_band=concept.grade_band,
                current_mastery=current,
                prerequisite_readiness=readiness,
                priority=zpd_priority(
                    readiness, current, concept.dependent_count, max_dependents
                ),
            )
        )

    # sorted() is stable, so equal priorities keep input order
    selected = sorted(selected, key=lambda c: c.priority, reverse=True)
    if limit is not None:
        return selected[:limit]
    return selected


def build_mastery_map(
    snapshots: list[ConceptSnapshot],
    now: datetime | None = None,
) -> dict[str, float]:
    """Decayed mastery keyed by concept id."""
    return {
        s.concept_id: decayed_mastery(s.raw_mastery, s.last_practiced, now)
        for s in snapshots
    }
