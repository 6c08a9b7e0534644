# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Chat API endpoints.

This module provides the synchronous chat endpoint:
- POST / - Run the learning pipeline for one student message

Long-running turns (investigations, image logs) can instead be submitted
through the jobs endpoints and polled.

Example:
    POST /api/v1/chat
    {
        "prompt": "I baked bread with my grandma today",
        "user_id": "student-1",
        "grade_level": "5th"
    }
"""

import logging
from typing import Annotated, Any, Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from src.api.dependencies import get_content_guard, get_pipeline, screen_prompt
from src.core.orchestration import Intent, LearningPipeline, PipelineContext
from src.core.orchestration.protocols import ContentGuard

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================


class ChatTurn(BaseModel):
    """One prior conversation turn."""

    role: Literal["user", "assistant", "system"] = Field(description="Speaker role")
    content: str = Field(description="Turn text")


class ChatRequest(BaseModel):
    """A student message plus its conversation context."""

    prompt: str = Field(min_length=1, description="Student message")
    user_id: str | None = Field(None, description="Learner ID")
    session_id: str | None = Field(None, description="Conversation ID")
    conversation_history: list[ChatTurn] = Field(
        default_factory=list, description="Prior turns, oldest first"
    )
    grade_level: str | None = Field(None, description="Grade, e.g. '5th' or '6-8'")
    interests: list[str] = Field(default_factory=list, description="Stated interests")
    service_goal: str | None = Field(None, description="Service goal for project plans")
    image_url: str | None = Field(None, description="Attached image URL or data URI")
    audio_base64: str | None = Field(None, description="Attached base64 audio")
    pending_reflection: dict[str, Any] | None = Field(
        None, description="Reflection marker returned with the previous reply"
    )
    detected_gaps: list[str] = Field(
        default_factory=list, description="Unresolved gap subjects known for the learner"
    )

    def to_context(self) -> PipelineContext:
        return PipelineContext(
            user_id=self.user_id,
            session_id=self.session_id,
            conversation_history=[turn.model_dump() for turn in self.conversation_history],
            grade_level=self.grade_level,
            interests=list(self.interests),
            service_goal=self.service_goal,
            image_url=self.image_url,
            audio_base64=self.audio_base64,
            pending_reflection=self.pending_reflection,
            detected_gaps=list(self.detected_gaps),
        )


class ChatResponse(BaseModel):
    """Pipeline reply."""

    intent: str = Field(description="Final intent")
    response_text: str = Field(description="Reply shown to the student")
    ui_payload: dict[str, Any] | None = Field(None, description="Generative UI component")
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="Stages, pending reflection, life credit and other run details",
    )


# ============================================================================
# Endpoints
# ============================================================================


@router.post(
    "",
    response_model=ChatResponse,
    summary="Send a chat message",
    description="Route the message, run the matching agent and return the reply.",
)
async def chat(
    request: ChatRequest,
    pipeline: Annotated[LearningPipeline, Depends(get_pipeline)],
    guard: Annotated[ContentGuard | None, Depends(get_content_guard)],
) -> ChatResponse:
    """Run the learning pipeline synchronously.

    The pipeline never raises; failures surface as stage records in
    ``metadata["stages"]`` and a degraded reply.
    """
    prompt, blocked_reply = await screen_prompt(request.prompt, guard)
    if blocked_reply is not None:
        return ChatResponse(
            intent=Intent.CHAT.value,
            response_text=blocked_reply,
            metadata={"moderated": True},
        )

    result = await pipeline.run_sync(prompt, request.to_context())
    logger.info("Chat handled: user=%s, intent=%s", request.user_id, result.intent.value)

    return ChatResponse(
        intent=result.intent.value,
        response_text=result.response_text,
        ui_payload=result.ui_payload,
        metadata=result.metadata,
    )
