# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the mastery engine."""

import asyncio
from datetime import timedelta

import pytest

from src.core.memory import MasteryEngine, MasteryError, PrerequisiteCycleError
from src.core.memory.stores import ConceptRecord, InMemoryLearningStore


async def _concept(store: InMemoryLearningStore, name: str, subject: str = "Math", band: str | None = None) -> str:
    concept = await store.add_concept(
        ConceptRecord(name=name, description=f"About {name}", subject_area=subject, grade_band=band)
    )
    return concept.id


# =============================================================================
# Spaced Repetition
# =============================================================================


@pytest.mark.unit
class TestReviewScheduling:
    """Tests for review schedules and due reviews."""

    @pytest.mark.asyncio
    async def test_schedule_is_created_once(self, mastery_engine, learning_store, clock) -> None:
        """A second schedule request for the same concept is a no-op."""
        concept_id = await _concept(learning_store, "Fractions")

        assert await mastery_engine.schedule_concept_review("u1", concept_id) is True
        assert await mastery_engine.schedule_concept_review("u1", concept_id) is False

        schedule = await learning_store.get_review_schedule("u1", concept_id)
        assert schedule.interval == 1
        assert schedule.ease_factor == pytest.approx(2.5)
        assert schedule.next_review_at == clock.now + timedelta(days=1)

    @pytest.mark.asyncio
    async def test_review_becomes_due_after_interval(self, mastery_engine, learning_store, clock) -> None:
        """A new schedule is due one day later."""
        concept_id = await _concept(learning_store, "Fractions")
        await mastery_engine.schedule_concept_review("u1", concept_id)

        assert await mastery_engine.get_due_reviews("u1") == []

        clock.advance(3)
        due = await mastery_engine.get_due_reviews("u1")

        assert len(due) == 1
        assert due[0].concept_name == "Fractions"
        assert due[0].overdue_days == pytest.approx(2.0)

    @pytest.mark.asyncio
    async def test_due_reviews_most_overdue_first_and_filtered(
        self, mastery_engine, learning_store, clock
    ) -> None:
        """Due reviews are ordered by due time and can be filtered by subject."""
        older = await _concept(learning_store, "Ratios", subject="Math")
        await mastery_engine.schedule_concept_review("u1", older)
        clock.advance(1)
        newer = await _concept(learning_store, "Photosynthesis", subject="Biology")
        await mastery_engine.schedule_concept_review("u1", newer)
        clock.advance(5)

        due = await mastery_engine.get_due_reviews("u1")
        biology = await mastery_engine.get_due_reviews("u1", subject_area="Biology")

        assert [d.concept_id for d in due] == [older, newer]
        assert [d.concept_id for d in biology] == [newer]

    @pytest.mark.asyncio
    async def test_record_review_runs_sm2_and_adjusts_mastery(
        self, mastery_engine, learning_store, clock
    ) -> None:
        """Two good reviews give intervals of 1 then 6 days."""
        concept_id = await _concept(learning_store, "Geometry")
        await mastery_engine.schedule_concept_review("u1", concept_id)

        first = await mastery_engine.record_review("u1", concept_id, quality=4)
        second = await mastery_engine.record_review("u1", concept_id, quality=4)

        assert first.interval == 1
        assert first.mastery_delta == pytest.approx(0.10)
        assert second.interval == 6
        assert second.next_review_at == clock.now + timedelta(days=6)

        mastery = await learning_store.get_mastery("u1", concept_id)
        assert mastery.mastery_level == pytest.approx(0.20)
        assert mastery.history[-1]["source"] == "spaced_repetition"
        assert mastery.history[-1]["quality"] == 4

    @pytest.mark.asyncio
    async def test_record_review_without_schedule_uses_defaults(
        self, mastery_engine, learning_store
    ) -> None:
        """Reviewing an unscheduled concept starts from the default schedule."""
        concept_id = await _concept(learning_store, "Botany")

        outcome = await mastery_engine.record_review("u1", concept_id, quality=1)

        schedule = await learning_store.get_review_schedule("u1", concept_id)
        assert outcome.interval == 1
        assert outcome.mastery_delta == pytest.approx(-0.05)
        assert schedule.repetitions == 0
        assert schedule.last_quality == 1

    @pytest.mark.asyncio
    async def test_due_reviews_summary(self, mastery_engine, learning_store, clock) -> None:
        """Summary lists due concepts, or says nothing is due."""
        assert await mastery_engine.get_due_reviews_summary("u1") == (
            "No concept reviews are currently due."
        )

        concept_id = await _concept(learning_store, "Fermentation", subject="Chemistry")
        await mastery_engine.schedule_concept_review("u1", concept_id)
        clock.advance(2)

        summary = await mastery_engine.get_due_reviews_summary("u1")

        assert summary.startswith("Concepts due for review (1):")
        assert "**Fermentation** (Chemistry)" in summary
        assert "Review #1" in summary


# =============================================================================
# Mastery Updates
# =============================================================================


@pytest.mark.unit
class TestUpdateMastery:
    """Tests for mastery updates."""

    @pytest.mark.asyncio
    async def test_level_is_clamped(self, mastery_engine) -> None:
        """Mastery never leaves [0, 1]."""
        high = await mastery_engine.update_mastery("u1", "c1", 1.7)
        low = await mastery_engine.update_mastery("u1", "c1", -3.0)

        assert high.mastery_level == 1.0
        assert low.mastery_level == 0.0

    @pytest.mark.asyncio
    async def test_history_is_capped(self, learning_store, clock) -> None:
        """Only the most recent history entries are kept."""
        engine = MasteryEngine(learning_store, history_limit=3, clock=clock)

        for i in range(5):
            await engine.update_mastery("u1", "c1", 0.01, evidence={"step": i})

        record = await learning_store.get_mastery("u1", "c1")
        assert [entry["step"] for entry in record.history] == [2, 3, 4]

    @pytest.mark.asyncio
    async def test_concurrent_updates_all_land(self, mastery_engine, learning_store) -> None:
        """Concurrent deltas on one key are serialized, none is lost."""
        await asyncio.gather(
            *(mastery_engine.update_mastery("u1", "c1", 0.01) for _ in range(25))
        )

        record = await learning_store.get_mastery("u1", "c1")
        assert record.mastery_level == pytest.approx(0.25)
        assert len(record.history) == 25

    @pytest.mark.asyncio
    async def test_knowledge_tracing_follows_evidence(self, mastery_engine) -> None:
        """Explicit correctness evidence drives the BKT observation."""
        correct = await mastery_engine.update_mastery("u1", "c1", 0.0, evidence={"correct": True})
        wrong = await mastery_engine.update_mastery("u1", "c2", 0.0, evidence={"correct": False})

        assert correct.bkt["pL"] > wrong.bkt["pL"]

    @pytest.mark.asyncio
    async def test_last_practiced_is_refreshed(self, mastery_engine, clock) -> None:
        """Every update stamps last_practiced with the clock time."""
        clock.advance(4)

        record = await mastery_engine.update_mastery("u1", "c1", 0.1)

        assert record.last_practiced == clock.now


# =============================================================================
# Zone of Proximal Development
# =============================================================================


@pytest.mark.unit
class TestZPD:
    """Tests for ZPD selection over the store."""

    @pytest.mark.asyncio
    async def test_select_zpd_uses_prerequisite_mastery(self, mastery_engine, learning_store) -> None:
        """Concepts unlock once their prerequisites are mastered."""
        fractions = await _concept(learning_store, "Fractions", band="3-5")
        ratios = await _concept(learning_store, "Ratios", band="6-8")
        await mastery_engine.add_prerequisite(ratios, fractions)

        before = await mastery_engine.select_zpd("u1")
        await mastery_engine.update_mastery("u1", fractions, 0.9)
        after = await mastery_engine.select_zpd("u1")

        assert [c.concept_id for c in before] == [fractions]
        assert [c.concept_id for c in after] == [ratios]

    @pytest.mark.asyncio
    async def test_select_zpd_filters(self, mastery_engine, learning_store) -> None:
        """Subject and grade band filters restrict the candidates."""
        await _concept(learning_store, "Fractions", subject="Math", band="3-5")
        botany = await _concept(learning_store, "Botany", subject="Biology", band="6-8")

        by_subject = await mastery_engine.select_zpd("u1", subject_area="Biology")
        by_band = await mastery_engine.select_zpd("u1", grade_band="6-8")

        assert [c.concept_id for c in by_subject] == [botany]
        assert [c.concept_id for c in by_band] == [botany]

    @pytest.mark.asyncio
    async def test_zpd_summary(self, mastery_engine, learning_store) -> None:
        """Summary lists concepts with mastery and knowledge tracing figures."""
        assert "No concepts currently identified" in await mastery_engine.get_zpd_summary("u1")

        await _concept(learning_store, "Fractions", band="3-5")
        summary = await mastery_engine.get_zpd_summary("u1")

        assert summary.startswith("Student's Zone of Proximal Development (top 1 concepts")
        assert "**Fractions** (Math, 3-5)" in summary
        assert "BKT P(L)=0.10" in summary
        assert "Mastery: 0%" in summary


# =============================================================================
# Concept Graph
# =============================================================================


@pytest.mark.unit
class TestPrerequisites:
    """Tests for prerequisite edge validation."""

    @pytest.mark.asyncio
    async def test_self_loop_rejected(self, mastery_engine, learning_store) -> None:
        """A concept cannot be its own prerequisite."""
        concept_id = await _concept(learning_store, "Ratios")

        with pytest.raises(PrerequisiteCycleError):
            await mastery_engine.add_prerequisite(concept_id, concept_id)

    @pytest.mark.asyncio
    async def test_cycle_rejected(self, mastery_engine, learning_store) -> None:
        """Closing a loop through the graph is rejected and nothing is stored."""
        a = await _concept(learning_store, "A")
        b = await _concept(learning_store, "B")
        c = await _concept(learning_store, "C")
        await mastery_engine.add_prerequisite(b, a)
        await mastery_engine.add_prerequisite(c, b)

        with pytest.raises(PrerequisiteCycleError) as exc_info:
            await mastery_engine.add_prerequisite(a, c)

        assert exc_info.value.concept_id == a
        graph = await learning_store.prerequisite_graph()
        assert graph[a] == []

    @pytest.mark.asyncio
    async def test_unknown_concept_rejected(self, mastery_engine, learning_store) -> None:
        """Edges must connect existing concepts."""
        a = await _concept(learning_store, "A")

        with pytest.raises(MasteryError, match="Concept not found"):
            await mastery_engine.add_prerequisite(a, "missing")

    @pytest.mark.asyncio
    async def test_edge_is_stored(self, mastery_engine, learning_store) -> None:
        """A valid edge appears in the concept's prerequisites."""
        a = await _concept(learning_store, "A")
        b = await _concept(learning_store, "B")

        await mastery_engine.add_prerequisite(b, a)

        concept = await learning_store.get_concept(b)
        assert concept.prerequisite_ids == [a]
