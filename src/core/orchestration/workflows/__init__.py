# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""LangGraph workflow implementations."""

from src.core.orchestration.workflows.pipeline import (
    DEGRADED_REPLY,
    DISPATCH,
    LearningPipeline,
    PipelineContext,
    PipelineResult,
    contained,
)

__all__ = [
    "DEGRADED_REPLY",
    "DISPATCH",
    "LearningPipeline",
    "PipelineContext",
    "PipelineResult",
    "contained",
]
