# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Workflow state definitions.

TypedDict-based state for the LangGraph learning pipeline.
"""

from src.core.orchestration.states.pipeline import (
    Attachments,
    Intent,
    LifeCreditMapping,
    PendingReflection,
    Phase,
    PipelineState,
    StageOutcome,
    StageRecord,
    TranscriptDraft,
    UIPayload,
    create_initial_pipeline_state,
    stage_record,
)

__all__ = [
    "Attachments",
    "Intent",
    "LifeCreditMapping",
    "PendingReflection",
    "Phase",
    "PipelineState",
    "StageOutcome",
    "StageRecord",
    "TranscriptDraft",
    "UIPayload",
    "create_initial_pipeline_state",
    "stage_record",
]
