# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Opportunity scouting.

OpportunityNode answers "what can I take part in?" with opportunities
matched to the student's grade and interests. ProactiveOpportunityScout
runs outside the pipeline: it looks at the student's recent transcript
entries and frames the best upcoming opportunity as a mission briefing.
"""

import logging
from dataclasses import dataclass
from typing import Any

from src.core.config.tutor import TutorConfig
from src.core.intelligence.llm import LLMClient, LLMError, extract_json_array
from src.core.memory.stores.base import LearningStore, OpportunityRecord
from src.core.orchestration.states.pipeline import PipelineState, stage_record
from src.utils.datetime import utc_now

logger = logging.getLogger(__name__)

MAX_INFERRED_INTERESTS = 4
OPPORTUNITY_LIMIT = 5
RECENT_TRANSCRIPTS = 5


def format_opportunity(opportunity: OpportunityRecord) -> str:
    return (
        f"- {opportunity.title} ({opportunity.type}): {opportunity.description}. "
        f"Matched interests: {', '.join(opportunity.matched_interests)}"
    )


class OpportunityNode:
    """OPPORTUNITY agent node."""

    def __init__(self, llm: LLMClient, config: TutorConfig, store: LearningStore) -> None:
        self._llm = llm
        self._config = config
        self._store = store

    async def infer_interests(
        self, prompt: str, conversation_history: list[dict[str, str]] | None
    ) -> list[str]:
        """Ask the model for up to four interest keywords; [] when unsure."""
        convo = "\n".join(
            f"{t.get('role', 'user')}: {t.get('content', '')}" for t in conversation_history or []
        )
        try:
            response = await self._llm.complete(
                "Extract up to 4 student interests as short keywords.\n"
                f"Conversation:\n{convo}\n"
                f"Latest: {prompt}\n\n"
                'Return ONLY JSON array of strings, e.g. ["woodworking","birds","gardening"]. '
                "If unknown, return [].",
                model=self._config.models.default,
                temperature=0,
                max_tokens=120,
            )
        except LLMError as e:
            logger.warning("Interest inference failed: %s", e)
            return []

        try:
            items = extract_json_array(response.content)
        except ValueError:
            return []
        return [item for item in items if isinstance(item, str)][:MAX_INFERRED_INTERESTS]

    async def __call__(self, state: PipelineState) -> dict[str, Any]:
        prompt = state.get("prompt", "")
        grade_level = state.get("grade_level")

        interests = list(state.get("interests") or [])
        if not interests:
            interests = await self.infer_interests(prompt, state.get("conversation_history"))

        opportunities = await self._store.list_opportunities(
            age_range=grade_level,
            interests=interests or None,
            limit=OPPORTUNITY_LIMIT,
        )
        if not opportunities:
            opportunities = await self._store.list_opportunities(limit=OPPORTUNITY_LIMIT)

        summary_prompt = (
            "You are Adeline. Briefly explain why each opportunity fits the student. Be concise.\n"
            f"Student interests: {', '.join(interests) or 'unknown'}\n"
            f"Student grade/age: {grade_level or 'unknown'}\n\n"
            "Opportunities:\n"
            + "\n".join(format_opportunity(o) for o in opportunities)
            + "\n\nReturn a short list in Adeline's warm voice, one bullet per opportunity. "
            "Mention who it helps and why it fits."
        )
        response = await self._llm.complete(
            summary_prompt,
            model=state.get("selected_model") or self._config.models.default,
            max_tokens=300,
        )

        return {
            "response_text": response.content,
            "stages": [stage_record("opportunity", "ok", f"{len(opportunities)} opportunities")],
        }


@dataclass
class MissionBriefing:
    opportunity: OpportunityRecord
    briefing: str


class ProactiveOpportunityScout:
    """Finds an opportunity that builds on the student's recent projects."""

    def __init__(self, llm: LLMClient, config: TutorConfig, store: LearningStore) -> None:
        self._llm = llm
        self._config = config
        self._store = store

    async def scout(self, user_id: str) -> MissionBriefing | None:
        """Build a mission briefing for the student's best next opportunity.

        Args:
            user_id: Learner id.

        Returns:
            MissionBriefing, or None when the student has no projects yet or
            nothing matches.

        Raises:
            LLMError: If the briefing cannot be generated.
        """
        entries = await self._store.list_transcript_entries(user_id, limit=RECENT_TRANSCRIPTS)
        if not entries:
            logger.info("No recent projects found for user %s", user_id)
            return None

        keywords = ", ".join(e.activity_name for e in entries)
        matches = await self._store.find_opportunities_for_activities(keywords, utc_now(), limit=3)
        if not matches:
            logger.info("No matching opportunities found for user %s", user_id)
            return None

        selected = matches[0]
        deadline = selected.deadline.date().isoformat() if selected.deadline else "none"
        response = await self._llm.complete(
            "You are Adeline, a warm and encouraging learning companion. You have found a "
            "perfect opportunity for a student based on their recent work.\n\n"
            f"Student's recent projects: {keywords}\n"
            f"Opportunity: {selected.title} - {selected.description}\n"
            f"Deadline: {deadline}\n\n"
            'Generate a short, exciting "Mission Briefing" that frames this as a quest. '
            "Be encouraging and highlight how their recent work has prepared them for this. "
            "Keep it under 150 words.",
            model=self._config.models.default,
            max_tokens=250,
        )
        return MissionBriefing(opportunity=selected, briefing=response.content.strip())
