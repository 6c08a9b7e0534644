# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Mastery engine: spaced repetition, ZPD selection and mastery updates.

The engine is the stateful side of the educational theories. It persists
SM-2 schedules and mastery levels through a ``LearningStore`` and answers
the questions the agent nodes ask ("what should this student review?",
"what are they ready to learn next?").

Mastery updates are read-modify-write operations serialized per
(user, concept) by the store, so concurrent updates to the same pair both
land while different concepts never contend.

Example:
    engine = MasteryEngine(store=InMemoryLearningStore())
    await engine.schedule_concept_review("user-1", concept.id)
    outcome = await engine.record_review("user-1", concept.id, quality=4)
    summary = await engine.get_zpd_summary("user-1")
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from src.core.educational.theories.knowledge_tracing import (
    DEFAULT_BKT,
    BKTParams,
    observe,
)
from src.core.educational.theories.spaced_repetition import (
    DEFAULT_EASE_FACTOR,
    DEFAULT_INTERVAL_DAYS,
    clamp_quality,
    quality_to_mastery_delta,
    sm2_schedule,
)
from src.core.educational.theories.zpd import (
    ConceptSnapshot,
    ZPDConcept,
    build_mastery_map,
    select_zpd_concepts,
)
from src.core.memory.stores.base import (
    LearningStore,
    MasteryRecord,
    ReviewScheduleRecord,
)
from src.utils.datetime import elapsed_days, ensure_utc, utc_now

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 50


class MasteryError(Exception):
    """Exception raised for mastery engine operations.

    Attributes:
        message: Error description.
        original_error: Original exception if any.
    """

    def __init__(self, message: str, original_error: Exception | None = None):
        self.message = message
        self.original_error = original_error
        super().__init__(self.message)


class PrerequisiteCycleError(MasteryError):
    """Raised when a prerequisite edge would make the concept graph cyclic."""

    def __init__(self, concept_id: str, prerequisite_id: str):
        self.concept_id = concept_id
        self.prerequisite_id = prerequisite_id
        super().__init__(
            f"Prerequisite {prerequisite_id} -> {concept_id} would create a cycle"
        )


@dataclass
class DueReview:
    """A review schedule that is due, joined with its concept."""

    concept_id: str
    concept_name: str
    concept_description: str
    subject_area: str
    next_review_at: datetime
    interval: int
    repetitions: int
    overdue_days: float


@dataclass
class ReviewOutcome:
    """Result of recording one review."""

    next_review_at: datetime
    interval: int
    mastery_delta: float


class MasteryEngine:
    """Spaced repetition and ZPD over a learning store.

    Attributes:
        store: Persistence for concepts, schedules and mastery.
        history_limit: Most recent history entries kept per mastery record.
    """

    def __init__(
        self,
        store: LearningStore,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._history_limit = history_limit
        self._clock = clock

    @property
    def store(self) -> LearningStore:
        return self._store

    # =========================================================================
    # Spaced repetition
    # =========================================================================

    async def schedule_concept_review(self, user_id: str, concept_id: str) -> bool:
        """Create the first review schedule for a concept.

        A no-op when the user already has a schedule for the concept.

        Returns:
            True when a schedule was created.
        """
        created = await self._store.create_review_schedule(
            ReviewScheduleRecord(
                user_id=user_id,
                concept_id=concept_id,
                next_review_at=self._clock() + timedelta(days=1),
                interval=DEFAULT_INTERVAL_DAYS,
                ease_factor=DEFAULT_EASE_FACTOR,
                repetitions=0,
            )
        )
        if created:
            logger.debug("Scheduled first review: user=%s, concept=%s", user_id, concept_id)
        return created

    async def get_due_reviews(
        self,
        user_id: str,
        limit: int = 10,
        subject_area: str | None = None,
    ) -> list[DueReview]:
        """Reviews due now or earlier, most overdue first."""
        now = self._clock()
        pairs = await self._store.list_due_reviews(
            user_id, now, limit=limit, subject_area=subject_area
        )
        return [
            DueReview(
                concept_id=concept.id,
                concept_name=concept.name,
                concept_description=concept.description,
                subject_area=concept.subject_area,
                next_review_at=schedule.next_review_at,
                interval=schedule.interval,
                repetitions=schedule.repetitions,
                overdue_days=max(0.0, elapsed_days(schedule.next_review_at, now)),
            )
            for schedule, concept in pairs
        ]

    async def record_review(
        self,
        user_id: str,
        concept_id: str,
        quality: float,
    ) -> ReviewOutcome:
        """Apply one recall-quality observation.

        Runs SM-2 on the stored schedule (or defaults), persists the new
        schedule and adjusts mastery by the quality's fixed delta.

        Args:
            user_id: Learner id.
            concept_id: Reviewed concept.
            quality: Recall quality; out of range values are clamped.

        Returns:
            The next review time, the new interval and the mastery delta.
        """
        q = clamp_quality(quality)
        now = self._clock()

        async with self._store.review_transaction(user_id, concept_id) as schedule:
            result = sm2_schedule(
                q,
                previous_interval=schedule.interval,
                previous_ease=schedule.ease_factor,
                previous_repetitions=schedule.repetitions,
            )
            schedule.interval = result.interval
            schedule.ease_factor = result.ease_factor
            schedule.repetitions = result.repetitions
            schedule.next_review_at = now + timedelta(days=result.interval)
            schedule.last_quality = q
            schedule.last_reviewed_at = now

        delta = quality_to_mastery_delta(q)
        await self.update_mastery(
            user_id,
            concept_id,
            delta,
            evidence={
                "source": "spaced_repetition",
                "quality": q,
                "new_interval": result.interval,
            },
        )

        logger.info(
            "Review recorded: user=%s, concept=%s, quality=%d, interval=%d",
            user_id,
            concept_id,
            q,
            result.interval,
        )
        return ReviewOutcome(
            next_review_at=schedule.next_review_at,
            interval=result.interval,
            mastery_delta=delta,
        )

    async def get_due_reviews_summary(self, user_id: str, limit: int = 5) -> str:
        """Prompt-ready text describing due reviews."""
        due = await self.get_due_reviews(user_id, limit=limit)
        if not due:
            return "No concept reviews are currently due."

        lines = []
        for i, review in enumerate(due, start=1):
            overdue = (
                f" ({review.overdue_days:.0f} days overdue)" if review.overdue_days > 0 else ""
            )
            lines.append(
                f"{i}. **{review.concept_name}** ({review.subject_area}) — "
                f"Review #{review.repetitions + 1}{overdue}"
            )
        return f"Concepts due for review ({len(due)}):\n" + "\n".join(lines)

    # =========================================================================
    # Mastery
    # =========================================================================

    async def update_mastery(
        self,
        user_id: str,
        concept_id: str,
        delta: float,
        evidence: dict[str, Any] | None = None,
    ) -> MasteryRecord:
        """Adjust a mastery level by delta, clamped to [0, 1].

        Appends a history entry with the evidence, refreshes last_practiced
        and advances the knowledge tracing estimate. ``evidence["correct"]``
        drives the tracing observation when present, otherwise the sign of
        delta does.

        Returns:
            The updated record.
        """
        evidence = evidence or {}
        now = self._clock()

        async with self._store.mastery_transaction(user_id, concept_id) as record:
            previous = record.mastery_level
            new_level = max(0.0, min(1.0, previous + delta))

            correct = bool(evidence.get("correct", delta > 0))
            bkt = observe(BKTParams.from_dict(record.bkt), correct)

            entry = {
                "timestamp": now.isoformat(),
                "previous_level": previous,
                "new_level": new_level,
                "delta": delta,
                **evidence,
            }
            history = [*record.history, entry]
            if self._history_limit and len(history) > self._history_limit:
                history = history[-self._history_limit :]

            record.mastery_level = new_level
            record.last_practiced = now
            record.history = history
            record.bkt = bkt.to_dict()

        logger.debug(
            "Mastery updated: user=%s, concept=%s, %.3f -> %.3f",
            user_id,
            concept_id,
            previous,
            new_level,
        )
        return record

    # =========================================================================
    # Zone of Proximal Development
    # =========================================================================

    async def _snapshots(self, user_id: str) -> list[ConceptSnapshot]:
        concepts = await self._store.list_concepts()
        mastery = {m.concept_id: m for m in await self._store.list_mastery(user_id)}

        dependents: dict[str, int] = {}
        for concept in concepts:
            for prerequisite_id in concept.prerequisite_ids:
                dependents[prerequisite_id] = dependents.get(prerequisite_id, 0) + 1

        snapshots = []
        for concept in concepts:
            record = mastery.get(concept.id)
            snapshots.append(
                ConceptSnapshot(
                    concept_id=concept.id,
                    name=concept.name,
                    description=concept.description,
                    subject_area=concept.subject_area,
                    grade_band=concept.grade_band,
                    prerequisite_ids=list(concept.prerequisite_ids),
                    dependent_count=dependents.get(concept.id, 0),
                    raw_mastery=record.mastery_level if record else 0.0,
                    last_practiced=ensure_utc(record.last_practiced) if record else None,
                    bkt_probability=BKTParams.from_dict(record.bkt if record else None).p_learned,
                )
            )
        return snapshots

    async def select_zpd(
        self,
        user_id: str,
        subject_area: str | None = None,
        grade_band: str | None = None,
        limit: int | None = None,
    ) -> list[ZPDConcept]:
        """Concepts the learner is ready to learn next, best first.

        Filters restrict the candidates; prerequisite readiness always uses
        mastery across the whole graph.
        """
        snapshots = await self._snapshots(user_id)
        mastery_map = build_mastery_map(snapshots, self._clock())
        candidates = [
            s
            for s in snapshots
            if (subject_area is None or s.subject_area == subject_area)
            and (grade_band is None or s.grade_band == grade_band)
        ]
        return select_zpd_concepts(candidates, mastery_map, limit=limit)

    async def get_zpd_summary(
        self,
        user_id: str,
        subject_area: str | None = None,
        limit: int = 5,
    ) -> str:
        """Prompt-ready text describing the learner's ZPD."""
        zpd = await self.select_zpd(user_id, subject_area=subject_area, limit=limit)
        if not zpd:
            return "No concepts currently identified in the student's Zone of Proximal Development."

        bkt_by_concept = {
            m.concept_id: BKTParams.from_dict(m.bkt).p_learned
            for m in await self._store.list_mastery(user_id)
        }
        lines = []
        for i, concept in enumerate(zpd, start=1):
            band = f", {concept.grade_band}" if concept.grade_band else ""
            p_learned = bkt_by_concept.get(concept.concept_id, DEFAULT_BKT.p_learned)
            lines.append(
                f"{i}. **{concept.name}** ({concept.subject_area}{band}) — "
                f"BKT P(L)={p_learned:.2f}, "
                f"Mastery: {concept.current_mastery * 100:.0f}%, "
                f"Prereq Readiness: {concept.prerequisite_readiness * 100:.0f}%, "
                f"Priority: {concept.priority * 100:.0f}%"
            )
        return (
            f"Student's Zone of Proximal Development (top {len(zpd)} concepts, "
            "BKT = Bayesian Knowledge Tracing probability of mastery):\n" + "\n".join(lines)
        )

    # =========================================================================
    # Concept graph
    # =========================================================================

    async def add_prerequisite(self, concept_id: str, prerequisite_id: str) -> None:
        """Add a prerequisite edge, rejecting self-loops and cycles.

        Raises:
            PrerequisiteCycleError: The edge would close a cycle.
            MasteryError: Either concept does not exist.
        """
        if concept_id == prerequisite_id:
            raise PrerequisiteCycleError(concept_id, prerequisite_id)

        graph = await self._store.prerequisite_graph()
        for cid in (concept_id, prerequisite_id):
            if cid not in graph:
                raise MasteryError(f"Concept not found: {cid}")

        # Cycle iff concept_id is already reachable from prerequisite_id
        stack = [prerequisite_id]
        seen: set[str] = set()
        while stack:
            current = stack.pop()
            if current == concept_id:
                raise PrerequisiteCycleError(concept_id, prerequisite_id)
            if current in seen:
                continue
            seen.add(current)
            stack.extend(graph.get(current, []))

        await self._store.add_prerequisite_edge(concept_id, prerequisite_id)
