# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the reflection coach and the life-to-credit node."""

import json
from unittest.mock import AsyncMock

import pytest

from src.core.intelligence.llm import LLMError, LLMResponse
from src.core.memory.stores import ConceptRecord, ReflectionType
from src.core.orchestration import create_initial_pipeline_state
from src.core.orchestration.nodes import LifeLogNode, ReflectionCoach
from src.core.orchestration.nodes.life_log import (
    HOURS_PER_CREDIT,
    build_draft,
    parse_match,
    subject_keywords,
)
from src.core.orchestration.nodes.reflect import (
    PARSE_FAILURE_FOLLOW_UP,
    REFLECTION_DIMENSIONS,
    REFLECTION_SEPARATOR,
    parse_score,
    pick_dimension,
)


def _reply(content: str) -> LLMResponse:
    return LLMResponse(content=content, model="test")


MATCH_REPLY = json.dumps(
    {
        "matchedRuleKey": "baking",
        "activityDescription": "Baked bread for an elderly neighbor",
        "mappedSubjects": ["Chemistry: Fermentation", "Math: Ratios"],
        "suggestedCredits": 0.25,
        "extensionSuggestion": "Compare two flours next time",
    }
)


# =============================================================================
# Reflection Coach
# =============================================================================


@pytest.mark.unit
class TestParseScore:
    """Tests for reflection score parsing."""

    def test_valid_reply(self) -> None:
        """Score and follow-up are read from the JSON reply."""
        assert parse_score('{"score": 0.8, "followUp": "Great insight!"}') == (0.8, "Great insight!")

    def test_fenced_reply(self) -> None:
        """Markdown fences around the JSON are tolerated."""
        score, _ = parse_score('```json\n{"score": 0.3, "followUp": "Why?"}\n```')

        assert score == pytest.approx(0.3)

    def test_score_is_clamped(self) -> None:
        """Scores outside [0, 1] are clamped."""
        assert parse_score('{"score": 7, "followUp": "x"}')[0] == 1.0
        assert parse_score('{"score": -1, "followUp": "x"}')[0] == 0.0

    def test_zero_score_is_kept(self) -> None:
        """A genuine zero is not mistaken for a missing score."""
        assert parse_score('{"score": 0, "followUp": "Tell me more?"}')[0] == 0.0

    def test_non_numeric_score_is_neutral(self) -> None:
        """A score that is not a number counts as 0.5."""
        assert parse_score('{"score": "high", "followUp": "x"}')[0] == 0.5

    def test_unparsable_reply(self) -> None:
        """Prose instead of JSON gives the neutral score and generic follow-up."""
        assert parse_score("What a lovely answer") == (0.5, PARSE_FAILURE_FOLLOW_UP)


@pytest.mark.unit
class TestReflectionCoach:
    """Tests for prompt and score modes."""

    def test_dimension_is_stable(self) -> None:
        """The same activity always gets the same dimension."""
        first = pick_dimension("Built a birdhouse")

        assert first == pick_dimension("Built a birdhouse")
        assert first in REFLECTION_DIMENSIONS

    @pytest.mark.asyncio
    async def test_prompt_mode_leaves_marker(self, tutor_config, mock_llm, learning_store) -> None:
        """Without a marker the coach asks a question and saves an entry."""
        mock_llm.complete = AsyncMock(return_value=_reply("What surprised you about the dough?"))
        coach = ReflectionCoach(mock_llm, tutor_config, learning_store)
        state = create_initial_pipeline_state("I noticed the dough rose faster", user_id="u1")

        update = await coach(state)

        marker = update["pending_reflection"]
        assert update["response_text"].endswith("What surprised you about the dough?")
        assert update["reflection"]["mode"] == "prompted"
        assert marker["prompt_used"] == "What surprised you about the dough?"
        entry = await learning_store.get_reflection(marker["reflection_entry_id"])
        assert entry.type == ReflectionType.REFLECT
        assert entry.dimension == marker["dimension"]

    @pytest.mark.asyncio
    async def test_anonymous_prompt_is_not_persisted(self, tutor_config, mock_llm, learning_store) -> None:
        """Without a user id the marker has no entry id."""
        coach = ReflectionCoach(mock_llm, tutor_config, learning_store)

        result = await coach.generate_prompt("Built a shelf")

        assert result.marker["reflection_entry_id"] is None

    @pytest.mark.asyncio
    async def test_score_mode_updates_entry_and_clears_marker(
        self, tutor_config, mock_llm, learning_store
    ) -> None:
        """A present marker scores the answer whatever the text says."""
        coach = ReflectionCoach(mock_llm, tutor_config, learning_store)
        prompt = await coach.generate_prompt("Built a shelf", user_id="u1")
        mock_llm.complete = AsyncMock(
            return_value=_reply('{"score": 0.9, "followUp": "You connected it to geometry!"}')
        )
        state = create_initial_pipeline_state(
            "I brainstorm ideas better after measuring twice",
            user_id="u1",
            pending_reflection=prompt.marker,
        )

        update = await coach(state)

        assert update["pending_reflection"] is None
        assert update["reflection"] == {"mode": "scored", "insight_score": 0.9}
        assert update["response_text"] == "🌟 You connected it to geometry!"
        entry = await learning_store.get_reflection(prompt.marker["reflection_entry_id"])
        assert entry.insight_score == pytest.approx(0.9)
        assert entry.student_response.startswith("I brainstorm")

    @pytest.mark.asyncio
    async def test_entry_save_failure_degrades(self, tutor_config, mock_llm, learning_store) -> None:
        """A storage failure still returns the question, without an entry id."""
        learning_store.add_reflection = AsyncMock(side_effect=RuntimeError("db down"))
        coach = ReflectionCoach(mock_llm, tutor_config, learning_store)

        result = await coach.generate_prompt("Built a shelf", user_id="u1")

        assert result.question
        assert result.marker["reflection_entry_id"] is None


# =============================================================================
# Life Log
# =============================================================================


@pytest.mark.unit
class TestParseMatch:
    """Tests for matcher reply parsing."""

    def test_valid_mapping(self) -> None:
        """Subjects are joined and credits kept."""
        mapping = parse_match(MATCH_REPLY, "I baked bread")

        assert mapping["rule_key"] == "baking"
        assert mapping["mapped_subjects"] == "Chemistry: Fermentation, Math: Ratios"
        assert mapping["suggested_credits"] == pytest.approx(0.25)

    @pytest.mark.parametrize("reply", ['{"matchedRuleKey": null}', "no idea", "[]"])
    def test_no_match(self, reply: str) -> None:
        """Null keys and unparsable replies mean no match."""
        assert parse_match(reply, "I did a thing") is None

    def test_bad_credits_default(self) -> None:
        """Missing or non-positive credits fall back to half a credit."""
        mapping = parse_match('{"matchedRuleKey": "reading", "suggestedCredits": 0}', "I read")

        assert mapping["suggested_credits"] == pytest.approx(0.5)
        assert mapping["activity"] == "I read"

    def test_draft_hours(self) -> None:
        """Hours are credits times 180."""
        draft = build_draft(parse_match(MATCH_REPLY, "I baked bread"), "I baked bread")

        assert draft["hours"] == pytest.approx(0.25 * HOURS_PER_CREDIT)
        assert draft["notes"] == "Compare two flours next time"

    def test_subject_keywords(self) -> None:
        """Mapped subjects split into unique keywords."""
        assert subject_keywords("Chemistry: Fermentation, Math: Ratios, Math: Units") == [
            "Chemistry",
            "Fermentation",
            "Math",
            "Ratios",
            "Units",
        ]


@pytest.mark.unit
class TestLifeLogNode:
    """Tests for the LIFE_LOG node."""

    @pytest.fixture
    def node(self, tutor_config, mock_llm, learning_store, mastery_engine) -> LifeLogNode:
        coach = ReflectionCoach(mock_llm, tutor_config, learning_store)
        return LifeLogNode(mock_llm, tutor_config, learning_store, mastery_engine, coach)

    @pytest.mark.asyncio
    async def test_logs_credit_schedules_reviews_and_chains_reflection(
        self, node, mock_llm, learning_store
    ) -> None:
        """A match saves a transcript entry, schedules reviews and asks a question."""
        fermentation = await learning_store.add_concept(
            ConceptRecord(name="Yeast Fermentation", subject_area="Chemistry")
        )
        mock_llm.complete = AsyncMock(
            side_effect=[_reply(MATCH_REPLY), _reply("What made the dough rise?")]
        )
        state = create_initial_pipeline_state("I baked bread for my neighbor", user_id="u1")

        update = await node(state)

        draft = update["transcript_draft"]
        assert draft["credits"] == pytest.approx(0.25)
        assert draft["transcript_entry_id"] is not None
        assert draft["scheduled_concepts"] == [fermentation.id]
        assert await learning_store.get_review_schedule("u1", fermentation.id) is not None
        entries = await learning_store.list_transcript_entries("u1")
        assert entries[0].mapped_subject == "Chemistry: Fermentation, Math: Ratios"

        assert "Life Credit Logged!" in update["response_text"]
        assert REFLECTION_SEPARATOR in update["response_text"]
        assert update["pending_reflection"]["prompt_used"] == "What made the dough rise?"
        assert [s["stage"] for s in update["stages"]] == ["life_log", "reflect"]

    @pytest.mark.asyncio
    async def test_no_match_still_asks_reflection(self, node, mock_llm, learning_store) -> None:
        """An unmapped activity logs no credit but is still asked about."""
        mock_llm.complete = AsyncMock(
            side_effect=[_reply('{"matchedRuleKey": null}'), _reply("What was the hardest part?")]
        )

        update = await node(create_initial_pipeline_state("I did a thing", user_id="u1"))

        assert "transcript_draft" not in update
        assert await learning_store.list_transcript_entries("u1") == []
        assert update["pending_reflection"]["activity_summary"] == "I did a thing"
        assert REFLECTION_SEPARATOR not in update["response_text"]
        assert "What was the hardest part?" in update["response_text"]
        assert [(s["stage"], s["outcome"]) for s in update["stages"]] == [
            ("life_log", "no_match"),
            ("reflect", "ok"),
        ]

    @pytest.mark.asyncio
    async def test_no_match_reflection_failure(self, node, mock_llm) -> None:
        """A failed question on the no-match path leaves only stage records."""
        mock_llm.complete = AsyncMock(
            side_effect=[_reply('{"matchedRuleKey": null}'), LLMError("timeout")]
        )

        update = await node(create_initial_pipeline_state("I did a thing", user_id="u1"))

        assert set(update) == {"stages"}
        assert update["stages"][-1]["outcome"] == "error"

    @pytest.mark.asyncio
    async def test_anonymous_draft_is_not_persisted(self, node, mock_llm, learning_store) -> None:
        """Without a user the draft is returned but nothing is saved."""
        mock_llm.complete = AsyncMock(side_effect=[_reply(MATCH_REPLY), _reply("Why?")])

        update = await node(create_initial_pipeline_state("I baked bread"))

        assert update["transcript_draft"]["transcript_entry_id"] is None
        assert update["transcript_draft"]["scheduled_concepts"] == []

    @pytest.mark.asyncio
    async def test_reflection_failure_keeps_credit(self, node, mock_llm) -> None:
        """A failed reflection prompt still returns the credit summary."""
        mock_llm.complete = AsyncMock(side_effect=[_reply(MATCH_REPLY), LLMError("timeout")])

        update = await node(create_initial_pipeline_state("I baked bread", user_id="u1"))

        assert "pending_reflection" not in update
        assert update["stages"][-1]["stage"] == "reflect"
        assert update["stages"][-1]["outcome"] == "error"
        assert "Life Credit Logged!" in update["response_text"]

    @pytest.mark.asyncio
    async def test_skipped_after_media_failure(self, node, mock_llm) -> None:
        """Unreadable media skips the matcher entirely."""
        state = create_initial_pipeline_state("", user_id="u1")
        state["media_failed"] = True

        update = await node(state)

        assert update["stages"][0]["outcome"] == "skipped"
        mock_llm.complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_matcher_error_propagates(self, node, mock_llm) -> None:
        """Matcher failures surface to the executor's containment."""
        mock_llm.complete = AsyncMock(side_effect=LLMError("down"))

        with pytest.raises(LLMError):
            await node(create_initial_pipeline_state("I baked bread", user_id="u1"))
