# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Agent nodes for the learning pipeline.

Each node is an async callable taking the PipelineState and returning a
partial update. Collaborators (LLM client, stores, mastery engine) are
injected through the constructor.
"""

from src.core.orchestration.nodes.brainstorm import BrainstormNode
from src.core.orchestration.nodes.gap_detector import GapDetector, grade_band
from src.core.orchestration.nodes.investigate import InvestigateNode
from src.core.orchestration.nodes.life_log import LifeLogNode
from src.core.orchestration.nodes.media import MEDIA_FAILURE_MESSAGE, ImageNode, VoiceNode
from src.core.orchestration.nodes.opportunity import (
    MissionBriefing,
    OpportunityNode,
    ProactiveOpportunityScout,
)
from src.core.orchestration.nodes.reflect import ReflectionCoach
from src.core.orchestration.nodes.ui_planner import plan_ui, ui_planner_node

__all__ = [
    "BrainstormNode",
    "GapDetector",
    "ImageNode",
    "InvestigateNode",
    "LifeLogNode",
    "MEDIA_FAILURE_MESSAGE",
    "MissionBriefing",
    "OpportunityNode",
    "ProactiveOpportunityScout",
    "ReflectionCoach",
    "VoiceNode",
    "grade_band",
    "plan_ui",
    "ui_planner_node",
]
