# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Learning pipeline workflow state.

One state object flows through a single pipeline run:

    router -> agent node(s) -> ui_planner -> gap_detector

Nodes return partial updates that LangGraph merges into the state. The
``stages`` list uses an additive reducer so every node appends its own
StageRecord without overwriting earlier ones.
"""

import operator
from enum import Enum
from typing import Annotated, Any, Literal, TypedDict


class Intent(str, Enum):
    """What the student is trying to do with this message."""

    CHAT = "CHAT"
    LIFE_LOG = "LIFE_LOG"
    BRAINSTORM = "BRAINSTORM"
    INVESTIGATE = "INVESTIGATE"
    GEN_UI = "GEN_UI"
    OPPORTUNITY = "OPPORTUNITY"
    REFLECT = "REFLECT"
    IMAGE_LOG = "IMAGE_LOG"
    VOICE_LOG = "VOICE_LOG"


class Phase(str, Enum):
    ROUTED = "ROUTED"
    AGENT_RUN = "AGENT_RUN"
    UI_PLANNED = "UI_PLANNED"
    GAP_CHECKED = "GAP_CHECKED"
    DONE = "DONE"


StageOutcome = Literal["ok", "error", "skipped", "no_match"]


class StageRecord(TypedDict):
    """Result of one pipeline stage."""

    stage: str
    outcome: StageOutcome
    detail: str


class Attachments(TypedDict, total=False):
    image_url: str
    audio_base64: str


class PendingReflection(TypedDict, total=False):
    """Marker left after a reflection prompt; the next turn is scored against it."""

    prompt_used: str
    activity_summary: str
    dimension: str
    reflection_entry_id: str | None


class LifeCreditMapping(TypedDict, total=False):
    rule_key: str
    activity: str
    mapped_subjects: str
    suggested_credits: float
    extension_suggestion: str | None


class TranscriptDraft(TypedDict, total=False):
    activity_name: str
    mapped_subject: str
    credits: float
    hours: float
    notes: str
    transcript_entry_id: str | None
    scheduled_concepts: list[str]


class UIPayload(TypedDict):
    component: str
    props: dict[str, Any]


class PipelineState(TypedDict, total=False):
    """State for one learning pipeline run.

    Attributes:
        prompt: Student message; media pre-processors replace it.
        original_prompt: Message as submitted.
        conversation_history: Prior turns, most recent last.
        user_id: Learner id; None for anonymous chat.
        session_id: Conversation id.
        grade_level: Grade string such as "7" or "6-8".
        interests: Stated interests.
        service_goal: Optional service goal for project plans.
        attachments: Attached image URL and/or base64 audio.
        pending_reflection: Marker from a previous reflection prompt.
        intent: Routed intent.
        model_profile: "default", "investigation" or "deep_analysis".
        selected_model: Model id resolved from the profile.
        life_credit: Activity-to-credit mapping from LIFE_LOG.
        transcript_draft: Draft transcript entry built from the mapping.
        ui_payload: Component selected for the client.
        response_text: Reply shown to the student.
        investigation: Sources used by INVESTIGATE.
        reflection: Reflection mode and score.
        media: Pre-processor output.
        media_failed: Set when a pre-processor could not read the media.
        detected_gaps: Subjects below expectation.
        gap_nudge: Message appended to the reply.
        phase: Last completed phase.
        stages: Ordered per-stage results.
    """

    prompt: str
    original_prompt: str
    conversation_history: list[dict[str, str]]
    user_id: str | None
    session_id: str | None
    grade_level: str | None
    interests: list[str]
    service_goal: str | None
    attachments: Attachments
    pending_reflection: PendingReflection | None

    intent: Intent
    model_profile: str
    selected_model: str

    life_credit: LifeCreditMapping | None
    transcript_draft: TranscriptDraft | None
    ui_payload: UIPayload | None
    response_text: str
    investigation: dict[str, Any] | None
    reflection: dict[str, Any] | None
    media: dict[str, Any] | None
    media_failed: bool

    detected_gaps: list[str]
    gap_nudge: str | None

    phase: Phase
    stages: Annotated[list[StageRecord], operator.add]


def stage_record(stage: str, outcome: StageOutcome, detail: str = "") -> StageRecord:
    return StageRecord(stage=stage, outcome=outcome, detail=detail)


def create_initial_pipeline_state(
    prompt: str,
    user_id: str | None = None,
    session_id: str | None = None,
    conversation_history: list[dict[str, str]] | None = None,
    grade_level: str | None = None,
    interests: list[str] | None = None,
    service_goal: str | None = None,
    image_url: str | None = None,
    audio_base64: str | None = None,
    pending_reflection: PendingReflection | None = None,
    detected_gaps: list[str] | None = None,
) -> PipelineState:
    """Create the state for a new pipeline run.

    Args:
        prompt: Student message.
        user_id: Learner id.
        session_id: Conversation id.
        conversation_history: Prior turns as ``{"role", "content"}`` dicts.
        grade_level: Grade string.
        interests: Stated interests.
        service_goal: Optional service goal.
        image_url: Attached image (URL or data URI).
        audio_base64: Attached audio recording.
        pending_reflection: Marker returned by the previous turn.
        detected_gaps: Unresolved gap subjects passed in by the caller.

    Returns:
        Initial PipelineState.
    """
    attachments: Attachments = {}
    if image_url:
        attachments["image_url"] = image_url
    if audio_base64:
        attachments["audio_base64"] = audio_base64

    return PipelineState(
        prompt=prompt,
        original_prompt=prompt,
        conversation_history=list(conversation_history or []),
        user_id=user_id,
        session_id=session_id,
        grade_level=grade_level,
        interests=list(interests or []),
        service_goal=service_goal,
        attachments=attachments,
        pending_reflection=pending_reflection,
        intent=Intent.CHAT,
        model_profile="default",
        selected_model="",
        life_credit=None,
        transcript_draft=None,
        ui_payload=None,
        response_text="",
        investigation=None,
        reflection=None,
        media=None,
        media_failed=False,
        detected_gaps=list(detected_gaps or []),
        gap_nudge=None,
        stages=[],
    )
