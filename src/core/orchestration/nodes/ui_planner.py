# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pick the UI component that accompanies a reply.

First match wins:

1. TranscriptCard when a transcript draft exists
2. InvestigationBoard when an investigation ran
3. ProjectImpactCard for BRAINSTORM
4. MissionBriefing for OPPORTUNITY
5. Timeline when the reply mentions a year or "timeline"
6. ConceptMap when gaps were detected
"""

import re
from typing import Any

from src.core.orchestration.states.pipeline import Intent, PipelineState, UIPayload, stage_record

_YEAR = re.compile(r"(19|20)\d{2}")


def is_timeline_candidate(text: str | None) -> bool:
    if not text:
        return False
    return "timeline" in text.lower() or _YEAR.search(text) is not None


def plan_ui(state: PipelineState) -> UIPayload | None:
    """Select a component for the state, or None."""
    intent = state.get("intent")
    response_text = state.get("response_text", "")

    draft = state.get("transcript_draft")
    if draft:
        return UIPayload(
            component="TranscriptCard",
            props={"transcript": dict(draft), "intent": intent.value if intent else None},
        )

    investigation = state.get("investigation")
    if intent == Intent.INVESTIGATE or investigation:
        return UIPayload(
            component="InvestigationBoard",
            props={
                "summary": response_text,
                "sources": (investigation or {}).get("sources", []),
            },
        )

    if intent == Intent.BRAINSTORM:
        props: dict[str, Any] = {"suggestion": response_text}
        current = state.get("ui_payload")
        if current and current.get("component") == "MissionBriefing":
            props["mission_briefing"] = current["props"]
        return UIPayload(component="ProjectImpactCard", props=props)

    if intent == Intent.OPPORTUNITY:
        return UIPayload(component="MissionBriefing", props={"content": response_text})

    if is_timeline_candidate(response_text):
        return UIPayload(component="Timeline", props={"content": response_text})

    gaps = state.get("detected_gaps")
    if gaps:
        return UIPayload(component="ConceptMap", props={"gaps": list(gaps)})

    return None


async def ui_planner_node(state: PipelineState) -> dict[str, Any]:
    payload = plan_ui(state)
    return {
        "ui_payload": payload,
        "stages": [stage_record("ui_planner", "ok", payload["component"] if payload else "none")],
    }
