# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the investigate, brainstorm and opportunity nodes."""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.core.intelligence.llm import LLMError, LLMResponse
from src.core.memory.rag.retriever import Document, DocumentRetriever
from src.core.memory.stores import OpportunityRecord, SourceType, TranscriptRecord
from src.core.orchestration import create_initial_pipeline_state
from src.core.orchestration.nodes import (
    BrainstormNode,
    InvestigateNode,
    OpportunityNode,
    ProactiveOpportunityScout,
)
from src.core.orchestration.nodes.investigate import prioritize
from src.utils.datetime import utc_now


def _reply(content: str) -> LLMResponse:
    return LLMResponse(content=content, model="test")


def _doc(doc_id: str, source_type: SourceType, similarity: float = 0.8) -> Document:
    return Document(
        id=doc_id,
        title=f"Doc {doc_id}",
        content="x" * 600,
        source_type=source_type,
        similarity=similarity,
    )


# =============================================================================
# Investigate
# =============================================================================


@pytest.mark.unit
class TestInvestigateNode:
    """Tests for source-grounded investigation."""

    def test_prioritize_is_stable_and_truncated(self) -> None:
        """Primary sources first, input order kept within a tier, at most five."""
        docs = [
            _doc("m1", SourceType.MAINSTREAM),
            _doc("p1", SourceType.PRIMARY),
            _doc("s1", SourceType.SECONDARY),
            _doc("p2", SourceType.PRIMARY),
            _doc("c1", SourceType.CURATED),
            _doc("m2", SourceType.MAINSTREAM),
        ]

        assert [d.id for d in prioritize(docs)] == ["p1", "p2", "c1", "s1", "m1"]

    @pytest.mark.asyncio
    async def test_cites_prioritized_sources(self, tutor_config, mock_llm) -> None:
        """Retrieved sources are passed to the model and reported."""
        retriever = MagicMock(spec=DocumentRetriever)
        retriever.search = AsyncMock(
            return_value=[_doc("m1", SourceType.MAINSTREAM), _doc("p1", SourceType.PRIMARY)]
        )
        mock_llm.complete = AsyncMock(return_value=_reply("[PRIMARY] The patent shows..."))
        node = InvestigateNode(mock_llm, tutor_config, retriever)
        state = create_initial_pipeline_state("Who profits from insulin prices?")
        state["selected_model"] = "gpt-4o"

        update = await node(state)

        retriever.search.assert_awaited_once_with(
            "Who profits from insulin prices?", limit=8, min_similarity=0.5
        )
        prompt = mock_llm.complete.call_args.args[0]
        assert prompt.index("[PRIMARY]") < prompt.index("[MAINSTREAM]")
        assert "x" * 501 not in prompt
        assert mock_llm.complete.call_args.kwargs["model"] == "gpt-4o"
        investigation = update["investigation"]
        assert [s["id"] for s in investigation["sources"]] == ["p1", "m1"]
        assert update["response_text"] == "[PRIMARY] The patent shows..."

    @pytest.mark.asyncio
    async def test_without_retriever(self, tutor_config, mock_llm) -> None:
        """No retriever means the model is told nothing was found."""
        node = InvestigateNode(mock_llm, tutor_config)

        update = await node(create_initial_pipeline_state("Investigate sugar"))

        assert "- none found" in mock_llm.complete.call_args.args[0]
        assert update["investigation"]["sources"] == []


# =============================================================================
# Brainstorm
# =============================================================================


@pytest.mark.unit
class TestBrainstormNode:
    """Tests for project brainstorming."""

    @pytest.mark.asyncio
    async def test_returns_plan_and_mission_briefing(self, tutor_config, mock_llm) -> None:
        """The plan comes with a MissionBriefing payload."""
        mock_llm.complete = AsyncMock(return_value=_reply("Let's build it!"))
        node = BrainstormNode(mock_llm, tutor_config)
        state = create_initial_pipeline_state("Brainstorm a birdhouse", service_goal="Help the park")

        update = await node(state)

        assert update["response_text"] == "Let's build it!"
        assert update["ui_payload"]["component"] == "MissionBriefing"
        assert update["ui_payload"]["props"]["objective"] == "Help the park"
        assert len(update["ui_payload"]["props"]["steps"]) == 3

    @pytest.mark.asyncio
    async def test_includes_zpd_summary(self, tutor_config, mock_llm, mastery_engine) -> None:
        """A known learner's ZPD is injected as stretch goals."""
        mastery_engine.get_zpd_summary = AsyncMock(return_value="ZPD: Geometry")
        node = BrainstormNode(mock_llm, tutor_config, mastery_engine)

        update = await node(create_initial_pipeline_state("brainstorm a shelf", user_id="u1"))

        assert "ZPD: Geometry" in mock_llm.complete.call_args.args[0]
        assert update["stages"][0]["detail"] == "zpd"
        assert update["ui_payload"]["props"]["objective"] == "Make and share the project"

    @pytest.mark.asyncio
    async def test_zpd_failure_is_tolerated(self, tutor_config, mock_llm, mastery_engine) -> None:
        """A failing ZPD lookup does not block the plan."""
        mastery_engine.get_zpd_summary = AsyncMock(side_effect=RuntimeError("db down"))
        node = BrainstormNode(mock_llm, tutor_config, mastery_engine)

        update = await node(create_initial_pipeline_state("brainstorm a shelf", user_id="u1"))

        assert update["response_text"] == "Sounds wonderful!"
        assert update["stages"][0]["detail"] == ""


# =============================================================================
# Opportunities
# =============================================================================


@pytest.mark.unit
class TestOpportunityNode:
    """Tests for opportunity matching."""

    @pytest.mark.asyncio
    async def test_uses_stated_interests(self, tutor_config, mock_llm, learning_store) -> None:
        """Stated interests filter opportunities without inference."""
        await learning_store.add_opportunity(
            OpportunityRecord(title="Bird Count", type="service", description="Count birds", matched_interests=["birds"])
        )
        await learning_store.add_opportunity(
            OpportunityRecord(title="Robot Fair", type="contest", description="Robots", matched_interests=["robots"])
        )
        node = OpportunityNode(mock_llm, tutor_config, learning_store)
        state = create_initial_pipeline_state("Any opportunities?", interests=["birds"])

        update = await node(state)

        assert mock_llm.complete.await_count == 1
        prompt = mock_llm.complete.call_args.args[0]
        assert "Bird Count" in prompt
        assert "Robot Fair" not in prompt
        assert update["stages"][0]["detail"] == "1 opportunities"

    @pytest.mark.asyncio
    async def test_infers_interests_and_falls_back(self, tutor_config, mock_llm, learning_store) -> None:
        """Inferred interests with no match fall back to any opportunity."""
        await learning_store.add_opportunity(
            OpportunityRecord(title="Robot Fair", type="contest", description="Robots", matched_interests=["robots"])
        )
        mock_llm.complete = AsyncMock(
            side_effect=[_reply('["knitting"]'), _reply("- Robot Fair fits you")]
        )
        node = OpportunityNode(mock_llm, tutor_config, learning_store)

        update = await node(create_initial_pipeline_state("Any opportunities?"))

        assert "Student interests: knitting" in mock_llm.complete.call_args.args[0]
        assert "Robot Fair" in mock_llm.complete.call_args.args[0]
        assert update["response_text"] == "- Robot Fair fits you"

    @pytest.mark.asyncio
    async def test_interest_inference(self, tutor_config, mock_llm, learning_store) -> None:
        """Only strings are kept, at most four; errors give no interests."""
        node = OpportunityNode(mock_llm, tutor_config, learning_store)

        mock_llm.complete = AsyncMock(return_value=_reply('["a", 3, "b", "c", "d", "e"]'))
        assert await node.infer_interests("hi", []) == ["a", "b", "c", "d"]

        mock_llm.complete = AsyncMock(return_value=_reply("not sure"))
        assert await node.infer_interests("hi", []) == []

        mock_llm.complete = AsyncMock(side_effect=LLMError("down"))
        assert await node.infer_interests("hi", []) == []


@pytest.mark.unit
class TestProactiveOpportunityScout:
    """Tests for mission briefings."""

    @pytest.mark.asyncio
    async def test_no_projects(self, tutor_config, mock_llm, learning_store) -> None:
        """A student without transcript entries gets nothing."""
        scout = ProactiveOpportunityScout(mock_llm, tutor_config, learning_store)

        assert await scout.scout("u1") is None
        mock_llm.complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_matching_opportunity(self, tutor_config, mock_llm, learning_store) -> None:
        """Projects without a matching or upcoming opportunity give nothing."""
        await learning_store.add_transcript_entry(
            TranscriptRecord(user_id="u1", activity_name="Baked bread", mapped_subject="Chemistry: Fermentation")
        )
        await learning_store.add_opportunity(
            OpportunityRecord(
                title="Old Contest",
                type="contest",
                description="Essays",
                deadline=utc_now() - timedelta(days=3),
            )
        )
        scout = ProactiveOpportunityScout(mock_llm, tutor_config, learning_store)

        assert await scout.scout("u1") is None

    @pytest.mark.asyncio
    async def test_briefs_soonest_opportunity(self, tutor_config, mock_llm, learning_store) -> None:
        """The opportunity with the nearest deadline is framed as a mission."""
        await learning_store.add_transcript_entry(
            TranscriptRecord(user_id="u1", activity_name="Built a birdhouse", mapped_subject="Math: Geometry")
        )
        later = OpportunityRecord(
            title="Science Fair", type="contest", description="Any project", deadline=utc_now() + timedelta(days=30)
        )
        sooner = OpportunityRecord(
            title="Park Cleanup", type="service", description="Build benches", deadline=utc_now() + timedelta(days=5)
        )
        await learning_store.add_opportunity(later)
        await learning_store.add_opportunity(sooner)
        mock_llm.complete = AsyncMock(return_value=_reply("  Your mission, should you accept it...  "))
        scout = ProactiveOpportunityScout(mock_llm, tutor_config, learning_store)

        mission = await scout.scout("u1")

        assert mission.opportunity.id == sooner.id
        assert mission.briefing == "Your mission, should you accept it..."
        assert "Built a birdhouse" in mock_llm.complete.call_args.args[0]
