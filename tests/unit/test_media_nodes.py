# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the image and voice pre-processors."""

import base64
import json
from unittest.mock import AsyncMock

import pytest

from src.core.intelligence.llm import LLMError, LLMResponse, Transcription
from src.core.orchestration import create_initial_pipeline_state
from src.core.orchestration.nodes import MEDIA_FAILURE_MESSAGE, ImageNode, VoiceNode
from src.core.orchestration.nodes.media import parse_analysis

AUDIO = base64.b64encode(b"RIFF....WAVEfmt ").decode()


# =============================================================================
# Image
# =============================================================================


@pytest.mark.unit
class TestImageNode:
    """Tests for snap-to-log."""

    def test_unparsable_analysis_uses_fallback(self) -> None:
        """A prose reply yields the low-confidence fallback analysis."""
        analysis = parse_analysis("Looks like bread!", "My loaf")

        assert analysis["activityDescription"] == "My loaf"
        assert analysis["confidence"] == 0.3
        assert analysis["skillsObserved"] == []

    @pytest.mark.asyncio
    async def test_enriches_prompt_with_analysis(self, tutor_config, mock_llm) -> None:
        """The caption is enriched for the life-log matcher."""
        mock_llm.complete_with_messages = AsyncMock(
            return_value=LLMResponse(
                content=json.dumps(
                    {
                        "activityDescription": "A braided loaf of bread",
                        "skillsObserved": ["Kneading", "Shaping"],
                        "qualityNotes": "Even golden crust",
                        "suggestedQuestion": "How did you get the braid so even?",
                        "confidence": 0.9,
                    }
                ),
                model="gpt-4o",
            )
        )
        node = ImageNode(mock_llm, tutor_config)
        state = create_initial_pipeline_state("My loaf", image_url="https://example.com/loaf.jpg")

        update = await node(state)

        assert update["prompt"].startswith("My loaf\n\n[Vision Analysis: A braided loaf of bread.")
        assert "Kneading, Shaping" in update["prompt"]
        assert "How did you get the braid so even?" in update["response_text"]
        assert update["media"]["kind"] == "image"
        message = mock_llm.complete_with_messages.call_args.args[0][0]
        assert message.content[1] == {
            "type": "image_url",
            "image_url": {"url": "https://example.com/loaf.jpg"},
        }
        assert mock_llm.complete_with_messages.call_args.kwargs["model"] == "gpt-4o-mini"

    @pytest.mark.asyncio
    async def test_vision_error_marks_media_failed(self, tutor_config, mock_llm) -> None:
        """A vision failure answers with the retry message."""
        mock_llm.complete_with_messages = AsyncMock(side_effect=LLMError("unsupported"))
        node = ImageNode(mock_llm, tutor_config)

        update = await node(create_initial_pipeline_state("x", image_url="data:image/png;base64,AA"))

        assert update["response_text"] == MEDIA_FAILURE_MESSAGE
        assert update["media_failed"] is True
        assert update["stages"][0]["outcome"] == "error"


# =============================================================================
# Voice
# =============================================================================


@pytest.mark.unit
class TestVoiceNode:
    """Tests for audio-to-log."""

    @pytest.mark.asyncio
    async def test_transcribes_and_cleans_up(self, tutor_config, mock_llm) -> None:
        """The cleaned statement replaces the prompt."""
        mock_llm.complete = AsyncMock(
            return_value=LLMResponse(content="I baked bread today.", model="m")
        )
        node = VoiceNode(mock_llm, tutor_config)

        update = await node(create_initial_pipeline_state("", audio_base64=AUDIO))

        assert update["prompt"] == "I baked bread today."
        assert "(4s recording)" in update["response_text"]
        assert update["media"]["original_transcription"] == "i baked bread today"
        assert mock_llm.transcribe.await_args.args[0] == base64.b64decode(AUDIO)

    @pytest.mark.asyncio
    async def test_cleanup_failure_uses_raw_text(self, tutor_config, mock_llm) -> None:
        """If clean-up fails the raw transcription is used."""
        mock_llm.complete = AsyncMock(side_effect=LLMError("down"))
        node = VoiceNode(mock_llm, tutor_config)

        update = await node(create_initial_pipeline_state("", audio_base64=AUDIO))

        assert update["prompt"] == "i baked bread today"

    @pytest.mark.asyncio
    async def test_invalid_base64(self, tutor_config, mock_llm) -> None:
        """Malformed audio fails without calling the transcriber."""
        node = VoiceNode(mock_llm, tutor_config)

        update = await node(create_initial_pipeline_state("", audio_base64="not base64!!"))

        assert update["media_failed"] is True
        mock_llm.transcribe.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_transcription(self, tutor_config, mock_llm) -> None:
        """Silence is treated as unreadable media."""
        mock_llm.transcribe = AsyncMock(return_value=Transcription(text="   "))
        node = VoiceNode(mock_llm, tutor_config)

        update = await node(create_initial_pipeline_state("", audio_base64=AUDIO))

        assert update["response_text"] == MEDIA_FAILURE_MESSAGE
        assert update["stages"][0]["detail"] == "empty transcription"
