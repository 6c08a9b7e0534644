# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Project brainstorming node."""

import logging
from typing import Any

from src.core.config.tutor import TutorConfig
from src.core.intelligence.llm import LLMClient
from src.core.memory.mastery import MasteryEngine
from src.core.orchestration.states.pipeline import PipelineState, UIPayload, stage_record

logger = logging.getLogger(__name__)

MISSION_STEPS = (
    "List materials and sketch the design together.",
    "Build and test it, taking notes/photos.",
    "Share it (or gift it) and reflect on what was learned.",
)
DEFAULT_OBJECTIVE = "Make and share the project"

_SYSTEM_PROMPT = (
    "You are Adeline's Project Brainstormer. Be enthusiastic and affirming. "
    "Deliver a full project plan immediately: what to build/do, learning goals, "
    "mapped credits, and a next step. After the plan, gently suggest a service idea "
    "as an invitation (optional, no pressure)."
)


def mission_briefing(title: str, service_goal: str | None) -> UIPayload:
    return UIPayload(
        component="MissionBriefing",
        props={
            "title": title,
            "objective": service_goal or DEFAULT_OBJECTIVE,
            "steps": list(MISSION_STEPS),
        },
    )


class BrainstormNode:
    """BRAINSTORM agent node.

    Plans are tuned to the learner's Zone of Proximal Development when a
    mastery engine and user id are available.
    """

    def __init__(
        self,
        llm: LLMClient,
        config: TutorConfig,
        mastery: MasteryEngine | None = None,
    ) -> None:
        self._llm = llm
        self._config = config
        self._mastery = mastery

    async def _zpd_summary(self, user_id: str | None) -> str | None:
        if self._mastery is None or not user_id:
            return None
        try:
            return await self._mastery.get_zpd_summary(user_id)
        except Exception as e:
            logger.warning("Failed to load ZPD summary for %s: %s", user_id, str(e))
            return None

    async def __call__(self, state: PipelineState) -> dict[str, Any]:
        prompt = state.get("prompt", "")
        model = state.get("selected_model") or self._config.models.default

        parts = [f"Student idea: {prompt}"]
        recent = (state.get("conversation_history") or [])[-4:]
        if recent:
            parts.append(
                "Recent conversation:\n"
                + "\n".join(f"{t.get('role', 'user')}: {t.get('content', '')}" for t in recent)
            )
        zpd = await self._zpd_summary(state.get("user_id"))
        if zpd:
            parts.append(
                f"{zpd}\n\nWhere it fits naturally, reference 1-2 of these concepts as "
                "stretch goals in the plan."
            )
        parts.append(
            "Respond with: 1) warm affirmation, 2) concise plan (3-4 sentences), "
            "3) mapped credits (woodworking/geometry/biology if relevant), 4) end with an "
            'optional service invitation like "Imagine gifting one to the nursing home '
            'garden" or similar.'
        )

        response = await self._llm.complete(
            "\n\n".join(parts),
            model=model,
            system_prompt=_SYSTEM_PROMPT,
            max_tokens=340,
        )

        return {
            "response_text": response.content,
            "ui_payload": mission_briefing(prompt, state.get("service_goal")),
            "stages": [stage_record("brainstorm", "ok", "zpd" if zpd else "")],
        }
