# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Image and voice pre-processors.

Both turn an attachment into a first-person activity description that
replaces the prompt before LIFE_LOG runs ("snap to log" and "audio to
log"). When the attachment cannot be read the node answers with a retry
message and sets ``media_failed`` so the chained LIFE_LOG work is skipped.
"""

import base64
import binascii
import logging
from typing import Any

from src.core.config.tutor import TutorConfig
from src.core.intelligence.llm import LLMClient, LLMError, Message, extract_json_object
from src.core.orchestration.states.pipeline import PipelineState, stage_record

logger = logging.getLogger(__name__)

MEDIA_FAILURE_MESSAGE = "I couldn't understand that, please try again"

_VISION_PROMPT = """You are Adeline's Vision Analyzer. A student has shared a photo of something they made or did.
{grade_context}

Student's caption: "{caption}"

Analyze the image and return ONLY strict JSON:
{{
  "activityDescription": "Brief description of what the student made/did based on the image",
  "skillsObserved": ["Skill 1", "Skill 2"],
  "qualityNotes": "Specific observations about the quality, technique, or effort visible in the image",
  "suggestedQuestion": "A specific follow-up question based on something you notice in the image (e.g. texture, color, structure)",
  "confidence": 0.9
}}

Be specific about what you SEE. Reference colors, textures, shapes, and details visible in the photo."""

_CLEANUP_PROMPT = """A student recorded a voice memo describing an activity they did. Clean up the transcription into a clear first-person statement suitable for logging as a learning activity. Keep it natural and preserve all details.

Raw transcription: "{text}"

Return ONLY the cleaned-up statement (e.g. "I baked sourdough bread and measured the ingredients using fractions"):"""


def _failed(stage: str, detail: str) -> dict[str, Any]:
    return {
        "response_text": MEDIA_FAILURE_MESSAGE,
        "media_failed": True,
        "stages": [stage_record(stage, "error", detail)],
    }


def fallback_analysis(caption: str) -> dict[str, Any]:
    """Analysis used when the vision reply cannot be parsed."""
    return {
        "activityDescription": caption or "Shared a photo of their work",
        "skillsObserved": [],
        "qualityNotes": "Unable to analyze image details",
        "suggestedQuestion": "Tell me more about what you made!",
        "confidence": 0.3,
    }


def parse_analysis(text: str, caption: str) -> dict[str, Any]:
    try:
        data = extract_json_object(text)
    except ValueError:
        logger.warning("Vision analysis reply was not JSON, using fallback")
        return fallback_analysis(caption)

    fallback = fallback_analysis(caption)
    skills = data.get("skillsObserved")
    return {
        "activityDescription": str(data.get("activityDescription") or fallback["activityDescription"]),
        "skillsObserved": [str(s) for s in skills] if isinstance(skills, list) else [],
        "qualityNotes": str(data.get("qualityNotes") or ""),
        "suggestedQuestion": str(data.get("suggestedQuestion") or fallback["suggestedQuestion"]),
        "confidence": data.get("confidence", fallback["confidence"]),
    }


class ImageNode:
    """IMAGE_LOG pre-processor using a vision-capable model."""

    def __init__(self, llm: LLMClient, config: TutorConfig) -> None:
        self._llm = llm
        self._config = config

    async def analyze(self, image_url: str, caption: str, grade_level: str | None) -> dict[str, Any]:
        """Describe the work shown in an image.

        Raises:
            LLMError: If the vision call fails.
        """
        grade_context = f"The student is in grade band {grade_level}." if grade_level else ""
        message = Message(
            role="user",
            content=[
                {
                    "type": "text",
                    "text": _VISION_PROMPT.format(
                        grade_context=grade_context,
                        caption=caption or "(no caption provided)",
                    ),
                },
                {"type": "image_url", "image_url": {"url": image_url}},
            ],
        )
        response = await self._llm.complete_with_messages(
            [message],
            model=self._config.models.vision_model,
            max_tokens=400,
        )
        return parse_analysis(response.content, caption)

    async def __call__(self, state: PipelineState) -> dict[str, Any]:
        image_url = (state.get("attachments") or {}).get("image_url")
        if not image_url:
            return _failed("image", "no image attached")

        caption = state.get("prompt", "")
        try:
            analysis = await self.analyze(image_url, caption, state.get("grade_level"))
        except LLMError as e:
            logger.warning("Vision analysis failed: %s", e)
            return _failed("image", str(e))

        skills = analysis["skillsObserved"]
        enriched = (
            f"{caption or 'I made this'}\n\n"
            f"[Vision Analysis: {analysis['activityDescription']}. "
            f"Skills observed: {', '.join(skills)}. {analysis['qualityNotes']}]"
        )
        skills_line = f"\n**Skills spotted:** {', '.join(skills)}" if skills else ""
        response_text = (
            f"📸 I can see what you've been working on! {analysis['activityDescription']}.\n"
            f"{skills_line}\n\n"
            f"**What I notice:** {analysis['qualityNotes']}\n\n"
            f"🔍 {analysis['suggestedQuestion']}"
        )

        return {
            "prompt": enriched,
            "response_text": response_text,
            "media": {"kind": "image", "analysis": analysis, "original_prompt": caption},
            "stages": [stage_record("image", "ok", f"confidence {analysis['confidence']}")],
        }


class VoiceNode:
    """VOICE_LOG pre-processor: transcribe, then clean up into a statement."""

    def __init__(self, llm: LLMClient, config: TutorConfig) -> None:
        self._llm = llm
        self._config = config

    async def clean_up(self, text: str) -> str:
        try:
            response = await self._llm.complete(
                _CLEANUP_PROMPT.format(text=text),
                model=self._config.models.default,
                temperature=0,
                max_tokens=200,
            )
        except LLMError as e:
            logger.warning("Transcription clean-up failed, using raw text: %s", e)
            return text
        return response.content.strip() or text

    async def __call__(self, state: PipelineState) -> dict[str, Any]:
        audio_base64 = (state.get("attachments") or {}).get("audio_base64")
        if not audio_base64:
            return _failed("voice", "no audio attached")

        try:
            audio = base64.b64decode(audio_base64, validate=True)
            transcription = await self._llm.transcribe(audio)
        except (binascii.Error, ValueError, LLMError) as e:
            logger.warning("Voice transcription failed: %s", e)
            return _failed("voice", str(e))

        if not transcription.text.strip():
            return _failed("voice", "empty transcription")

        cleaned = await self.clean_up(transcription.text)
        duration_note = (
            f" ({round(transcription.duration)}s recording)" if transcription.duration else ""
        )

        return {
            "prompt": cleaned,
            "response_text": f'🎙️ I heard you say: "{cleaned}"{duration_note}\n\nLet me log that for you...',
            "media": {
                "kind": "voice",
                "original_transcription": transcription.text,
                "cleaned_prompt": cleaned,
                "language": transcription.language,
                "duration": transcription.duration,
            },
            "stages": [stage_record("voice", "ok")],
        }
