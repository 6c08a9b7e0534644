# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the educational theories (SM-2, ZPD, BKT)."""

from datetime import datetime, timedelta, timezone

import pytest

from src.core.educational.theories import (
    BKTParams,
    ConceptSnapshot,
    bkt_update,
    build_mastery_map,
    clamp_quality,
    decayed_mastery,
    observe,
    prerequisite_readiness,
    quality_to_mastery_delta,
    select_zpd_concepts,
    sm2_schedule,
)

NOW = datetime(2025, 3, 1, tzinfo=timezone.utc)


# =============================================================================
# Spaced Repetition (SM-2)
# =============================================================================


@pytest.mark.unit
class TestSM2Schedule:
    """Tests for sm2_schedule."""

    def test_first_success_is_one_day(self) -> None:
        """First successful recall schedules the next review tomorrow."""
        result = sm2_schedule(4)

        assert result.interval == 1
        assert result.repetitions == 1
        assert result.ease_factor == pytest.approx(2.5)

    def test_second_success_is_six_days(self) -> None:
        """Second consecutive success jumps to six days."""
        result = sm2_schedule(5, previous_interval=1, previous_ease=2.6, previous_repetitions=1)

        assert result.interval == 6
        assert result.repetitions == 2
        assert result.ease_factor == pytest.approx(2.7)

    def test_later_success_multiplies_by_ease(self) -> None:
        """From the third success the interval is round(interval * ease)."""
        result = sm2_schedule(4, previous_interval=6, previous_ease=2.5, previous_repetitions=2)

        assert result.interval == 15
        assert result.repetitions == 3

    def test_failure_resets_repetitions_and_keeps_ease(self) -> None:
        """A failed recall restarts the sequence without touching ease."""
        result = sm2_schedule(2, previous_interval=15, previous_ease=2.2, previous_repetitions=4)

        assert result.interval == 1
        assert result.repetitions == 0
        assert result.ease_factor == pytest.approx(2.2)

    def test_ease_factor_never_drops_below_floor(self) -> None:
        """Repeated hard recalls stop at the 1.3 ease floor."""
        ease = 2.5
        reps = 0
        interval = 1
        for _ in range(20):
            result = sm2_schedule(3, interval, ease, reps)
            ease, reps, interval = result.ease_factor, result.repetitions, result.interval

        assert ease == pytest.approx(1.3)

    def test_quality_three_lowers_ease(self) -> None:
        """Quality 3 passes but costs 0.14 ease."""
        result = sm2_schedule(3)

        assert result.ease_factor == pytest.approx(2.36)

    def test_out_of_range_quality_is_clamped(self) -> None:
        """Quality above 5 behaves like 5, below 0 like 0."""
        assert sm2_schedule(9) == sm2_schedule(5)
        assert sm2_schedule(-3) == sm2_schedule(0)


@pytest.mark.unit
class TestQualityHelpers:
    """Tests for quality clamping and mastery deltas."""

    @pytest.mark.parametrize(
        "quality,expected",
        [(2.5, 3), (3.49, 3), (4.5, 5), (-0.4, 0), (7, 5)],
    )
    def test_clamp_quality_rounds_halves_up(self, quality: float, expected: int) -> None:
        """Fractional qualities round half up, then clamp."""
        assert clamp_quality(quality) == expected

    def test_mastery_delta_table(self) -> None:
        """Each quality maps to its fixed mastery adjustment."""
        assert quality_to_mastery_delta(5) == pytest.approx(0.15)
        assert quality_to_mastery_delta(3) == pytest.approx(0.05)
        assert quality_to_mastery_delta(2) == pytest.approx(-0.02)
        assert quality_to_mastery_delta(0) == pytest.approx(-0.08)


# =============================================================================
# Zone of Proximal Development
# =============================================================================


@pytest.mark.unit
class TestDecayedMastery:
    """Tests for the forgetting curve."""

    def test_half_life_halves_mastery(self) -> None:
        """Thirty days without practice halves the stored level."""
        last = NOW - timedelta(days=30)

        assert decayed_mastery(0.8, last, NOW) == pytest.approx(0.4)

    def test_never_practiced_is_unchanged(self) -> None:
        """No practice timestamp means no decay."""
        assert decayed_mastery(0.6, None, NOW) == pytest.approx(0.6)

    def test_future_timestamp_is_unchanged(self) -> None:
        """Practice recorded in the future does not inflate mastery."""
        assert decayed_mastery(0.6, NOW + timedelta(days=2), NOW) == pytest.approx(0.6)


@pytest.mark.unit
class TestSelectZPD:
    """Tests for ZPD concept selection."""

    def test_readiness_without_prerequisites_is_full(self) -> None:
        """A concept with no prerequisites is always reachable."""
        assert prerequisite_readiness([], {}) == 1.0

    def test_unknown_prerequisite_counts_as_zero(self) -> None:
        """Missing mastery for a prerequisite pulls readiness down."""
        assert prerequisite_readiness(["a", "b"], {"a": 1.0}) == pytest.approx(0.5)

    def test_mastered_and_unready_concepts_are_excluded(self) -> None:
        """Mastered concepts and those with weak prerequisites are skipped."""
        snapshots = [
            ConceptSnapshot(concept_id="fractions", name="Fractions", raw_mastery=0.9, last_practiced=NOW),
            ConceptSnapshot(
                concept_id="ratios",
                name="Ratios",
                prerequisite_ids=["fractions"],
                raw_mastery=0.2,
                last_practiced=NOW,
            ),
            ConceptSnapshot(
                concept_id="algebra",
                name="Algebra",
                prerequisite_ids=["ratios"],
            ),
        ]
        mastery = build_mastery_map(snapshots, NOW)

        selected = select_zpd_concepts(snapshots, mastery)

        assert [c.concept_id for c in selected] == ["ratios"]
        assert selected[0].prerequisite_readiness == pytest.approx(0.9)

    def test_decay_can_push_concept_back_into_zpd(self) -> None:
        """A once-mastered concept reappears after enough time away."""
        snapshots = [
            ConceptSnapshot(
                concept_id="botany",
                name="Botany",
                raw_mastery=0.9,
                last_practiced=NOW - timedelta(days=60),
            )
        ]

        selected = select_zpd_concepts(snapshots, build_mastery_map(snapshots, NOW))

        assert len(selected) == 1
        assert selected[0].current_mastery == pytest.approx(0.225)

    def test_ranked_by_priority_with_stable_ties(self) -> None:
        """Higher priority first; equal priorities keep input order."""
        snapshots = [
            ConceptSnapshot(concept_id="a", name="A"),
            ConceptSnapshot(concept_id="b", name="B"),
            ConceptSnapshot(concept_id="c", name="C", dependent_count=3),
        ]

        selected = select_zpd_concepts(snapshots, build_mastery_map(snapshots, NOW))

        assert [c.concept_id for c in selected] == ["c", "a", "b"]

    def test_limit_truncates_results(self) -> None:
        """The limit keeps only the best concepts."""
        snapshots = [ConceptSnapshot(concept_id=str(i), name=str(i)) for i in range(5)]

        selected = select_zpd_concepts(snapshots, {}, limit=2)

        assert len(selected) == 2

    def test_zero_limit_selects_nothing(self) -> None:
        """A limit of zero is a limit, not "unbounded"."""
        snapshots = [ConceptSnapshot(concept_id=str(i), name=str(i)) for i in range(3)]

        assert select_zpd_concepts(snapshots, {}, limit=0) == []
        assert len(select_zpd_concepts(snapshots, {}, limit=None)) == 3

    def test_cyclic_graph_terminates(self) -> None:
        """Readiness only reads direct prerequisites, so cycles are harmless."""
        snapshots = [
            ConceptSnapshot(concept_id="x", name="X", prerequisite_ids=["y"]),
            ConceptSnapshot(concept_id="y", name="Y", prerequisite_ids=["x"]),
        ]

        assert select_zpd_concepts(snapshots, {}) == []


# =============================================================================
# Bayesian Knowledge Tracing
# =============================================================================


@pytest.mark.unit
class TestKnowledgeTracing:
    """Tests for BKT updates."""

    def test_correct_answer_raises_probability(self) -> None:
        """A correct observation increases P(L)."""
        params = BKTParams()

        assert bkt_update(params, correct=True) > params.p_learned

    def test_incorrect_answer_still_applies_learning_step(self) -> None:
        """Even after a miss the transit probability adds some learning."""
        params = BKTParams(p_learned=0.1)

        updated = bkt_update(params, correct=False)

        assert 0.0 < updated < 1.0
        assert updated >= params.p_transit

    def test_observe_returns_new_params(self) -> None:
        """observe only advances p_learned."""
        params = BKTParams()

        updated = observe(params, correct=True)

        assert updated.p_learned != params.p_learned
        assert updated.p_slip == params.p_slip
        assert updated.p_guess == params.p_guess

    def test_dict_round_trip_defaults_missing_keys(self) -> None:
        """Stored dicts may omit keys; defaults fill the gaps."""
        params = BKTParams.from_dict({"pL": 0.4})

        assert params.p_learned == pytest.approx(0.4)
        assert params.p_transit == pytest.approx(BKTParams().p_transit)
        assert BKTParams.from_dict(None) == BKTParams()
