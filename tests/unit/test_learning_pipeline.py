# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the learning pipeline executor."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.core.intelligence.llm import LLMError, LLMResponse
from src.core.memory import CacheHit, SemanticCache
from src.core.memory.rag.retriever import DocumentRetriever, RetrieverError
from src.core.orchestration import (
    Intent,
    LearningPipeline,
    Phase,
    PipelineContext,
    contained,
    create_initial_pipeline_state,
)
from src.core.orchestration.nodes import MEDIA_FAILURE_MESSAGE
from src.core.orchestration.workflows.pipeline import DEGRADED_REPLY


def _reply(content: str) -> LLMResponse:
    return LLMResponse(content=content, model="test")


MATCH_REPLY = json.dumps(
    {
        "matchedRuleKey": "baking",
        "activityDescription": "Baked bread",
        "mappedSubjects": ["Chemistry: Fermentation", "Math: Ratios"],
        "suggestedCredits": 0.25,
    }
)


def _stages(result) -> list[tuple[str, str]]:
    return [(s["stage"], s["outcome"]) for s in result.metadata["stages"]]


@pytest.fixture
def semantic_cache() -> MagicMock:
    cache = MagicMock(spec=SemanticCache)
    cache.lookup = AsyncMock(return_value=None)
    cache.store = AsyncMock(return_value=True)
    return cache


@pytest.fixture
def pipeline(tutor_config, mock_llm, learning_store, mastery_engine) -> LearningPipeline:
    return LearningPipeline(tutor_config, mock_llm, learning_store, mastery_engine)


# =============================================================================
# Containment
# =============================================================================


@pytest.mark.unit
class TestContained:
    """Tests for the node wrapper."""

    @pytest.mark.asyncio
    async def test_exception_becomes_error_stage(self) -> None:
        """A raising node yields only an error stage and the phase."""

        async def broken(state):
            raise ValueError("bad json")

        update = await contained("life_log", broken, Phase.AGENT_RUN)(
            create_initial_pipeline_state("x")
        )

        assert update == {
            "stages": [{"stage": "life_log", "outcome": "error", "detail": "ValueError: bad json"}],
            "phase": Phase.AGENT_RUN,
        }

    @pytest.mark.asyncio
    async def test_success_passes_update_through(self) -> None:
        """A successful node's update is kept."""

        async def ok(state):
            return {"response_text": "hi"}

        update = await contained("chat", ok)(create_initial_pipeline_state("x"))

        assert update == {"response_text": "hi"}


# =============================================================================
# Dispatch
# =============================================================================


@pytest.mark.unit
class TestDispatch:
    """Tests for routing through the graph."""

    @pytest.mark.asyncio
    async def test_chat_uses_persona_reply(self, pipeline, mock_llm) -> None:
        """Unmatched text gets the persona chat reply."""
        result = await pipeline.run_sync(
            "What do owls eat?",
            PipelineContext(conversation_history=[{"role": "user", "content": "hi"}] * 12),
        )

        assert result.intent == Intent.CHAT
        assert result.response_text == "Let's explore that."
        assert result.ui_payload is None
        assert _stages(result) == [
            ("router", "ok"),
            ("ui_planner", "ok"),
            ("gap_detector", "skipped"),
            ("chat", "ok"),
        ]
        messages = mock_llm.complete_with_messages.call_args.args[0]
        assert messages[0].role == "system"
        assert "You are Adeline." in messages[0].content
        assert len(messages) == 12
        assert messages[-1].content == "What do owls eat?"

    @pytest.mark.asyncio
    async def test_life_log_with_gap_nudge(self, pipeline, mock_llm, learning_store) -> None:
        """A life log produces a transcript card, a reflection marker and a nudge."""
        mock_llm.complete = AsyncMock(
            side_effect=[_reply(MATCH_REPLY), _reply("What made the dough rise?")]
        )

        result = await pipeline.run_sync(
            "I baked bread", PipelineContext(user_id="u1", grade_level="7")
        )

        assert result.intent == Intent.LIFE_LOG
        assert result.ui_payload["component"] == "TranscriptCard"
        assert result.metadata["pending_reflection"]["prompt_used"] == "What made the dough rise?"
        assert result.metadata["detected_gaps"] == ["English", "Math", "Chemistry"]
        assert result.response_text.endswith(
            "We haven't logged credits for English, Math, Chemistry. "
            "Want a quick idea to close that gap?"
        )
        assert result.metadata["phase"] == "DONE"
        assert len(await learning_store.list_transcript_entries("u1")) == 1

    @pytest.mark.asyncio
    async def test_known_gaps_render_concept_map(self, pipeline) -> None:
        """Gaps passed in with the context give a chat turn the ConceptMap."""
        result = await pipeline.run_sync(
            "What do owls eat?",
            PipelineContext(user_id="u1", grade_level="7", detected_gaps=["Math"]),
        )

        assert result.intent == Intent.CHAT
        assert result.ui_payload == {"component": "ConceptMap", "props": {"gaps": ["Math"]}}
        assert ("ui_planner", "ok") in _stages(result)
        assert result.response_text.startswith("Let's explore that.")

    @pytest.mark.asyncio
    async def test_unmatched_life_log_still_asks_reflection(self, pipeline, mock_llm) -> None:
        """An activity with no credit rule is answered with a reflection question."""
        mock_llm.complete = AsyncMock(
            side_effect=[_reply('{"matchedRuleKey": null}'), _reply("What did you notice?")]
        )

        result = await pipeline.run_sync("I made a kite", PipelineContext(user_id="u1"))

        assert result.intent == Intent.LIFE_LOG
        assert result.ui_payload is None
        assert "What did you notice?" in result.response_text
        assert result.metadata["pending_reflection"]["prompt_used"] == "What did you notice?"
        assert ("chat", "ok") not in _stages(result)
        mock_llm.complete_with_messages.assert_not_called()

    @pytest.mark.asyncio
    async def test_pending_reflection_scores_chat_turn(self, pipeline, mock_llm) -> None:
        """A CHAT turn carrying a marker is scored by the reflection coach."""
        mock_llm.complete = AsyncMock(
            side_effect=[
                _reply("CHAT"),
                _reply('{"score": 0.2, "followUp": "What part was tricky?"}'),
            ]
        )
        marker = {"prompt_used": "What was hard?", "activity_summary": "Bread", "dimension": "Challenge"}

        result = await pipeline.run_sync("it was fine", PipelineContext(pending_reflection=marker))

        assert result.intent == Intent.CHAT
        assert result.response_text == "🤔 What part was tricky?"
        assert result.metadata["reflection"] == {"mode": "scored", "insight_score": 0.2}
        assert result.metadata["pending_reflection"] is None

    @pytest.mark.asyncio
    async def test_image_chains_into_life_log(self, pipeline, mock_llm) -> None:
        """An image is analyzed, then logged as a life activity."""
        mock_llm.complete_with_messages = AsyncMock(
            return_value=_reply('{"activityDescription": "A loaf", "skillsObserved": ["Baking"]}')
        )
        mock_llm.complete = AsyncMock(side_effect=[_reply(MATCH_REPLY), _reply("How long?")])

        result = await pipeline.run_sync(
            "My bread", PipelineContext(user_id="u1", image_url="https://example.com/b.jpg")
        )

        assert result.intent == Intent.IMAGE_LOG
        assert result.ui_payload["component"] == "TranscriptCard"
        assert result.response_text.startswith("📸")
        assert "Life Credit Logged!" in result.response_text
        assert ("image", "ok") in _stages(result)
        assert ("life_log", "ok") in _stages(result)

    @pytest.mark.asyncio
    async def test_unreadable_media_skips_life_log(self, pipeline, mock_llm) -> None:
        """Bad audio answers with the retry message and logs nothing."""
        result = await pipeline.run_sync(
            "", PipelineContext(user_id="u1", audio_base64="%%%")
        )

        assert result.intent == Intent.VOICE_LOG
        assert result.response_text == MEDIA_FAILURE_MESSAGE
        assert ("voice", "error") in _stages(result)
        assert ("life_log", "skipped") in _stages(result)
        mock_llm.complete.assert_not_called()


# =============================================================================
# Failure Handling
# =============================================================================


@pytest.mark.unit
class TestFailures:
    """Tests for degraded paths."""

    @pytest.mark.asyncio
    async def test_failing_node_is_contained(
        self, tutor_config, mock_llm, learning_store, mastery_engine
    ) -> None:
        """A failing agent leaves later stages running and falls back to chat."""
        retriever = MagicMock(spec=DocumentRetriever)
        retriever.search = AsyncMock(side_effect=RetrieverError("qdrant down"))
        pipeline = LearningPipeline(
            tutor_config, mock_llm, learning_store, mastery_engine, retriever=retriever
        )

        result = await pipeline.run_sync("Let's investigate the sugar lobby")

        assert result.intent == Intent.INVESTIGATE
        assert result.response_text == "Let's explore that."
        assert _stages(result) == [
            ("router", "ok"),
            ("investigate", "error"),
            ("ui_planner", "ok"),
            ("gap_detector", "skipped"),
            ("chat", "ok"),
        ]
        assert result.metadata["investigation"] is None

    @pytest.mark.asyncio
    async def test_chat_failure_gives_degraded_reply(self, pipeline, mock_llm) -> None:
        """An LLM failure in the chat fallback yields the degraded reply."""
        mock_llm.complete_with_messages = AsyncMock(side_effect=LLMError("rate limited"))

        result = await pipeline.run_sync("What do owls eat?")

        assert result.response_text == DEGRADED_REPLY
        assert _stages(result)[-1] == ("chat", "error")

    @pytest.mark.asyncio
    async def test_run_sync_never_raises(self, pipeline) -> None:
        """An executor failure still returns a degraded result."""
        app = MagicMock()
        app.ainvoke = AsyncMock(side_effect=RuntimeError("graph exploded"))

        with patch.object(pipeline, "_app", app):
            result = await pipeline.run_sync("hello")

        assert result.intent == Intent.CHAT
        assert result.response_text == DEGRADED_REPLY
        assert _stages(result) == [("pipeline", "error")]


# =============================================================================
# Semantic Cache
# =============================================================================


@pytest.mark.unit
class TestSemanticCacheUse:
    """Tests for cache consultation around a run."""

    @pytest.fixture
    def cached_pipeline(
        self, tutor_config, mock_llm, learning_store, mastery_engine, semantic_cache
    ) -> LearningPipeline:
        return LearningPipeline(
            tutor_config, mock_llm, learning_store, mastery_engine, semantic_cache=semantic_cache
        )

    @pytest.mark.asyncio
    async def test_hit_short_circuits(self, cached_pipeline, semantic_cache, mock_llm) -> None:
        """A hit is returned without running the graph."""
        semantic_cache.lookup = AsyncMock(
            return_value=CacheHit(
                intent="OPPORTUNITY",
                response_text="Cached list",
                ui_payload={"component": "MissionBriefing", "props": {}},
                similarity=0.97,
            )
        )

        result = await cached_pipeline.run_sync("Any opportunities?")

        assert result.intent == Intent.OPPORTUNITY
        assert result.response_text == "Cached list"
        assert result.metadata["cached"] is True
        assert result.metadata["similarity"] == pytest.approx(0.97)
        mock_llm.complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_store_excludes_nudge(self, cached_pipeline, semantic_cache, mock_llm) -> None:
        """Cacheable replies are stored without the per-student nudge."""
        mock_llm.complete = AsyncMock(side_effect=[_reply("[]"), _reply("Here are some ideas")])

        result = await cached_pipeline.run_sync(
            "Any opportunities?", PipelineContext(user_id="u1", grade_level="7")
        )

        semantic_cache.store.assert_awaited_once_with(
            "Any opportunities?",
            "OPPORTUNITY",
            "Here are some ideas",
            {"component": "MissionBriefing", "props": {"content": "Here are some ideas"}},
        )
        assert result.response_text.startswith("Here are some ideas\n\n")
        assert result.metadata["cached"] is False

    @pytest.mark.parametrize(
        "prompt,context",
        [
            ("I baked bread", PipelineContext()),
            ("I realized ratios matter", PipelineContext()),
            ("What is this?", PipelineContext(image_url="https://example.com/a.jpg")),
            ("ok", PipelineContext(pending_reflection={"prompt_used": "Why?"})),
            ("What do owls eat?", PipelineContext(detected_gaps=["Math"])),
        ],
    )
    @pytest.mark.asyncio
    async def test_personal_turns_bypass_cache(
        self, cached_pipeline, semantic_cache, prompt, context
    ) -> None:
        """Personal turns never touch the cache."""
        await cached_pipeline.run_sync(prompt, context)

        semantic_cache.lookup.assert_not_called()
        semantic_cache.store.assert_not_called()

    @pytest.mark.asyncio
    async def test_failed_run_is_not_stored(
        self, tutor_config, mock_llm, learning_store, mastery_engine, semantic_cache
    ) -> None:
        """A run with an errored stage is not cached."""
        retriever = MagicMock(spec=DocumentRetriever)
        retriever.search = AsyncMock(side_effect=RetrieverError("down"))
        pipeline = LearningPipeline(
            tutor_config,
            mock_llm,
            learning_store,
            mastery_engine,
            retriever=retriever,
            semantic_cache=semantic_cache,
        )

        await pipeline.run_sync("Let's investigate the sugar lobby")

        semantic_cache.lookup.assert_awaited_once()
        semantic_cache.store.assert_not_called()

    @pytest.mark.asyncio
    async def test_plain_chat_without_component_is_not_stored(
        self, cached_pipeline, semantic_cache
    ) -> None:
        """Replies without a UI payload are not cached."""
        await cached_pipeline.run_sync("What do owls eat?")

        semantic_cache.store.assert_not_called()
