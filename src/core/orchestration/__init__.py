# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Learning pipeline orchestration using LangGraph.

Architecture:
    API / worker -> JobRunner -> LearningPipeline -> IntentRouter
                                        |
                                   agent nodes -> LLM, LearningStore, MasteryEngine
                                        |
                                 UI planner -> gap detector

Usage:
    from src.core.orchestration import LearningPipeline, PipelineContext

    pipeline = LearningPipeline(config, llm, store, mastery)
    result = await pipeline.run_sync("I built a birdhouse", PipelineContext(user_id="u1"))
"""

from src.core.orchestration.jobs import BatchResult, JobRunner, job_channel
from src.core.orchestration.protocols import ContentGuard, MaskResult, ModerationResult
from src.core.orchestration.routing import IntentRouter, classify, select_model_profile
from src.core.orchestration.states import (
    Intent,
    Phase,
    PipelineState,
    StageRecord,
    create_initial_pipeline_state,
)
from src.core.orchestration.workflows import (
    LearningPipeline,
    PipelineContext,
    PipelineResult,
    contained,
)

__all__ = [
    # Jobs
    "BatchResult",
    "JobRunner",
    "job_channel",
    # Protocols
    "ContentGuard",
    "MaskResult",
    "ModerationResult",
    # Routing
    "IntentRouter",
    "classify",
    "select_model_profile",
    # State
    "Intent",
    "Phase",
    "PipelineState",
    "StageRecord",
    "create_initial_pipeline_state",
    # Workflow
    "LearningPipeline",
    "PipelineContext",
    "PipelineResult",
    "contained",
]
