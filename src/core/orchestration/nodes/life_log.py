# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Life-to-credit logging.

Maps something the student did in everyday life (baking, building,
volunteering) onto transcript subjects using the configured
life-to-credit rules, then:

1. Builds a transcript draft (1 credit = 180 hours) and saves it.
2. Schedules spaced-repetition reviews for concepts matching the subjects.
3. Writes the credit summary.
4. Chains a post-activity reflection question onto the reply.

An activity the model cannot confidently map is recorded as "no_match"
and still gets the reflection question, asked about the message itself.
"""

import json
import logging
from typing import Any

from src.core.config.tutor import TutorConfig
from src.core.intelligence.llm import LLMClient, LLMError, extract_json_object
from src.core.memory.mastery import MasteryEngine
from src.core.memory.stores.base import LearningStore, ReflectionType, TranscriptRecord
from src.core.orchestration.nodes.reflect import ReflectionCoach, append_reflection
from src.core.orchestration.states.pipeline import (
    LifeCreditMapping,
    PipelineState,
    StageRecord,
    TranscriptDraft,
    stage_record,
)

logger = logging.getLogger(__name__)

HOURS_PER_CREDIT = 180
DEFAULT_CREDITS = 0.5

_MATCH_PROMPT = """You map real-world student activities to transcript credit mappings.
Here are the available rules as JSON key/value pairs (key = life activity, value = subjects/skills):
{rules}

Student description: \"\"\"{prompt}\"\"\"

Return ONLY strict JSON with this shape (no prose):
{{
  "matchedRuleKey": "baking",
  "activityDescription": "Baked bread for elderly neighbor",
  "mappedSubjects": ["Chemistry: Fermentation", "Math: Ratios"],
  "suggestedCredits": 0.5,
  "extensionSuggestion": "Test a variable next time, try different flour types and compare results"
}}
If you cannot confidently map, return {{"matchedRuleKey": null}}.
"""


def parse_match(text: str, prompt: str) -> LifeCreditMapping | None:
    """Turn the matcher reply into a mapping, or None for no match."""
    try:
        data = extract_json_object(text)
    except ValueError:
        logger.warning("Life credit match reply was not JSON")
        return None

    rule_key = data.get("matchedRuleKey")
    if not rule_key:
        return None

    subjects = data.get("mappedSubjects")
    if isinstance(subjects, list):
        mapped = ", ".join(str(s) for s in subjects)
    else:
        mapped = str(subjects or "")

    try:
        credits = float(data.get("suggestedCredits", DEFAULT_CREDITS))
    except (TypeError, ValueError):
        credits = DEFAULT_CREDITS
    if not credits > 0:
        credits = DEFAULT_CREDITS

    return LifeCreditMapping(
        rule_key=str(rule_key),
        activity=str(data.get("activityDescription") or prompt),
        mapped_subjects=mapped,
        suggested_credits=credits,
        extension_suggestion=data.get("extensionSuggestion") or None,
    )


def subject_keywords(mapped_subjects: str) -> list[str]:
    """Split "Chemistry: Fermentation, Math: Ratios" into unique keywords."""
    keywords: list[str] = []
    for segment in mapped_subjects.split(","):
        for part in segment.split(":"):
            word = part.strip()
            if word and word not in keywords:
                keywords.append(word)
    return keywords


def build_draft(mapping: LifeCreditMapping, prompt: str) -> TranscriptDraft:
    credits = mapping.get("suggested_credits", DEFAULT_CREDITS)
    return TranscriptDraft(
        activity_name=mapping.get("activity") or prompt,
        mapped_subject=mapping.get("mapped_subjects", ""),
        credits=credits,
        hours=credits * HOURS_PER_CREDIT,
        notes=mapping.get("extension_suggestion") or f"Auto-mapped from life activity: {prompt}",
        transcript_entry_id=None,
        scheduled_concepts=[],
    )


def format_summary(draft: TranscriptDraft, extension: str | None) -> str:
    credits = draft["credits"]
    lines = [
        "🎉 **Life Credit Logged!**",
        "",
        f"**Activity:** {draft['activity_name']}",
        f"**Subjects:** {draft['mapped_subject'] or 'General'}",
        f"**Credits:** {credits:g} ({draft['hours']:g} hours)",
    ]
    if extension:
        lines += ["", f"**Level it up:** {extension}"]
    return "\n".join(lines)


class LifeLogNode:
    """LIFE_LOG agent node.

    Attributes:
        llm: Completion client.
        config: Tutor configuration with the life-to-credit rules.
        store: Transcript and concept storage.
        mastery: Engine used to schedule concept reviews.
        reflection_coach: Asks the post-activity question.
    """

    def __init__(
        self,
        llm: LLMClient,
        config: TutorConfig,
        store: LearningStore,
        mastery: MasteryEngine,
        reflection_coach: ReflectionCoach,
    ) -> None:
        self._llm = llm
        self._config = config
        self._store = store
        self._mastery = mastery
        self._reflection_coach = reflection_coach

    async def match(self, prompt: str) -> LifeCreditMapping | None:
        """Match an activity against the credit rules.

        Raises:
            LLMError: If the matcher call fails.
        """
        response = await self._llm.complete(
            _MATCH_PROMPT.format(
                rules=json.dumps(self._config.life_to_credit_rules, indent=2),
                prompt=prompt,
            ),
            model=self._config.models.default,
            temperature=0,
            max_tokens=300,
        )
        return parse_match(response.content, prompt)

    async def _save_entry(self, user_id: str, draft: TranscriptDraft) -> str | None:
        try:
            entry = await self._store.add_transcript_entry(
                TranscriptRecord(
                    user_id=user_id,
                    activity_name=draft["activity_name"],
                    mapped_subject=draft["mapped_subject"],
                    credits_earned=draft["credits"],
                    notes=draft["notes"],
                )
            )
        except Exception as e:
            logger.warning("Failed to save transcript entry: %s", str(e))
            return None
        return entry.id

    async def _schedule_reviews(self, user_id: str, mapped_subjects: str) -> list[str]:
        keywords = subject_keywords(mapped_subjects)
        if not keywords:
            return []

        concepts = await self._store.search_concepts(keywords, limit=5)
        scheduled = []
        for concept in concepts:
            await self._mastery.schedule_concept_review(user_id, concept.id)
            scheduled.append(concept.id)
        if scheduled:
            logger.info("Scheduled %d concept reviews for user %s", len(scheduled), user_id)
        return scheduled

    async def __call__(self, state: PipelineState) -> dict[str, Any]:
        if state.get("media_failed"):
            return {"stages": [stage_record("life_log", "skipped", "media could not be read")]}

        prompt = state.get("prompt", "")
        user_id = state.get("user_id")

        mapping = await self.match(prompt)
        if mapping is None:
            logger.debug("No life credit rule matched")
            update: dict[str, Any] = {}
            stages = [stage_record("life_log", "no_match")]
            await self._ask_reflection(state, prompt, state.get("response_text", ""), update, stages)
            update["stages"] = stages
            return update

        draft = build_draft(mapping, prompt)
        if user_id:
            draft["transcript_entry_id"] = await self._save_entry(user_id, draft)
            draft["scheduled_concepts"] = await self._schedule_reviews(
                user_id, mapping.get("mapped_subjects", "")
            )

        existing = state.get("response_text", "")
        summary = format_summary(draft, mapping.get("extension_suggestion"))
        response_text = f"{existing}\n\n{summary}" if existing else summary

        update = {
            "life_credit": mapping,
            "transcript_draft": draft,
            "response_text": response_text,
        }
        stages = [stage_record("life_log", "ok", mapping["rule_key"])]

        await self._ask_reflection(state, draft["activity_name"], response_text, update, stages)
        update["stages"] = stages
        return update

    async def _ask_reflection(
        self,
        state: PipelineState,
        activity: str,
        response_text: str,
        update: dict[str, Any],
        stages: list[StageRecord],
    ) -> None:
        try:
            reflection = await self._reflection_coach.generate_prompt(
                activity,
                user_id=state.get("user_id"),
                grade_level=state.get("grade_level"),
                conversation_history=state.get("conversation_history"),
                reflection_type=ReflectionType.POST_ACTIVITY,
            )
        except LLMError as e:
            logger.warning("Post-activity reflection prompt failed: %s", e)
            stages.append(stage_record("reflect", "error", str(e)))
            return
        update["response_text"] = append_reflection(response_text, reflection.question)
        update["reflection"] = {"mode": "prompted", "dimension": reflection.dimension}
        update["pending_reflection"] = reflection.marker
        stages.append(stage_record("reflect", "ok", f"prompted {reflection.dimension}"))
