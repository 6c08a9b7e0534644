# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Metacognitive reflection coach.

Two modes share one node:

- Prompt mode asks ONE Socratic question about a finished activity and
  leaves a pending marker in the state so the client can send it back with
  the student's answer.
- Score mode rates the answer to that question (0.0 to 1.0), replies with a
  short follow-up and clears the marker.

A present marker always means score mode. Questions rotate through five
reflection dimensions; the dimension for an activity is picked by a stable
hash of its description so the same activity always gets the same one.
"""

import hashlib
import logging
from dataclasses import dataclass
from typing import Any

from src.core.config.tutor import TutorConfig
from src.core.intelligence.llm import LLMClient, extract_json_object
from src.core.memory.stores.base import LearningStore, ReflectionRecord, ReflectionType
from src.core.orchestration.states.pipeline import PendingReflection, PipelineState, stage_record

logger = logging.getLogger(__name__)

REFLECTION_DIMENSIONS = (
    "Process: What steps did you take and why?",
    "Challenge: What was the hardest part and how did you work through it?",
    "Connection: How does this relate to something you already knew?",
    "Transfer: Where else in your life could you use what you learned?",
    "Growth: What would you do differently next time?",
)

PARSE_FAILURE_SCORE = 0.5
PARSE_FAILURE_FOLLOW_UP = "Tell me more about what you noticed!"
MISSING_FOLLOW_UP = "Tell me more about that!"
REFLECTION_SEPARATOR = "\n\n---\n\n"

_SCORE_PROMPT = """You are evaluating the depth of a student's metacognitive reflection.

Reflection prompt: "{prompt_used}"
Student's response: "{response}"

Score the reflection depth from 0.0 to 1.0:
- 0.0-0.2: Surface level, vague, or off-topic
- 0.3-0.5: Some specificity but lacks depth or self-awareness
- 0.6-0.8: Good self-awareness, specific examples, shows genuine thinking
- 0.9-1.0: Exceptional, deep insight, connects to broader patterns, shows growth mindset

Then provide a brief, warm follow-up that either:
- Affirms their insight and extends it (if score >= 0.6)
- Gently probes deeper with a follow-up question (if score < 0.6)

Return ONLY strict JSON:
{{
  "score": 0.7,
  "followUp": "That's a really thoughtful observation about..."
}}"""


def pick_dimension(activity: str) -> str:
    """Full dimension text for an activity description."""
    digest = hashlib.sha256(activity.encode("utf-8")).hexdigest()
    return REFLECTION_DIMENSIONS[int(digest, 16) % len(REFLECTION_DIMENSIONS)]


def dimension_name(dimension: str) -> str:
    return dimension.split(":", 1)[0]


def parse_score(text: str) -> tuple[float, str]:
    """Parse a ``{score, followUp}`` reply.

    Scores are clamped to [0, 1]; a non-numeric score counts as 0.5. An
    unparsable reply yields the neutral score and a generic follow-up.
    """
    try:
        data = extract_json_object(text)
    except ValueError:
        return PARSE_FAILURE_SCORE, PARSE_FAILURE_FOLLOW_UP

    try:
        score = float(data.get("score"))
    except (TypeError, ValueError):
        score = PARSE_FAILURE_SCORE
    if score != score:  # NaN
        score = PARSE_FAILURE_SCORE
    score = max(0.0, min(1.0, score))

    follow_up = data.get("followUp")
    if not isinstance(follow_up, str) or not follow_up.strip():
        follow_up = MISSING_FOLLOW_UP
    return score, follow_up


def score_emoji(score: float) -> str:
    if score >= 0.7:
        return "🌟"
    if score >= 0.4:
        return "💭"
    return "🤔"


@dataclass
class ReflectionPrompt:
    """A generated reflection question and the marker that tracks it."""

    question: str
    dimension: str
    marker: PendingReflection


class ReflectionCoach:
    """Generates and scores reflection prompts.

    Attributes:
        llm: Completion client.
        config: Tutor configuration (default model).
        store: Where ReflectionEntry rows are kept.
    """

    def __init__(self, llm: LLMClient, config: TutorConfig, store: LearningStore) -> None:
        self._llm = llm
        self._config = config
        self._store = store

    async def generate_prompt(
        self,
        activity: str,
        user_id: str | None = None,
        grade_level: str | None = None,
        conversation_history: list[dict[str, str]] | None = None,
        reflection_type: ReflectionType = ReflectionType.POST_ACTIVITY,
    ) -> ReflectionPrompt:
        """Ask one reflection question about an activity.

        Args:
            activity: Description of what the student did.
            user_id: Learner id; without one nothing is persisted.
            grade_level: Grade band used to tune vocabulary.
            conversation_history: Prior turns; the last four are shown.
            reflection_type: Stored type of the ReflectionEntry.

        Returns:
            ReflectionPrompt with the question and pending marker.

        Raises:
            LLMError: If the question cannot be generated.
        """
        dimension = pick_dimension(activity)
        name = dimension_name(dimension)
        recent = "\n".join(
            f"{turn.get('role', 'user')}: {turn.get('content', '')}"
            for turn in (conversation_history or [])[-4:]
        )
        grade_context = (
            f"The student is in grade band {grade_level}. Adjust vocabulary and depth accordingly."
            if grade_level
            else ""
        )

        system_prompt = (
            "You are Adeline's Reflection Coach. Your role is to help students develop "
            "metacognitive awareness: the ability to think about their own thinking and learning.\n\n"
            "You ask ONE warm, specific, Socratic question that invites the student to reflect "
            "on their recent activity. The question should:\n"
            "- Be conversational and encouraging (not like a test)\n"
            "- Reference specific details from what they did\n"
            f"- Target this reflection dimension: {dimension}\n"
            f"- Be age-appropriate {grade_context}\n\n"
            "Never lecture. Never give the answer. Just ask a genuinely curious question "
            "that makes them pause and think."
        )
        prompt = (
            f"Recent conversation:\n{recent}\n\n"
            f'The student just completed this activity: "{activity}"\n\n'
            f'Ask ONE thoughtful reflection question targeting the "{name}" dimension. '
            "Keep it warm and brief (1-2 sentences)."
        )

        response = await self._llm.complete(
            prompt,
            model=self._config.models.default,
            system_prompt=system_prompt,
            max_tokens=250,
        )
        question = response.content.strip()

        entry_id = None
        if user_id:
            entry_id = await self._save_entry(
                ReflectionRecord(
                    user_id=user_id,
                    type=reflection_type,
                    activity_summary=activity,
                    prompt_used=question,
                    dimension=name,
                )
            )

        marker = PendingReflection(
            prompt_used=question,
            activity_summary=activity,
            dimension=name,
            reflection_entry_id=entry_id,
        )
        return ReflectionPrompt(question=question, dimension=name, marker=marker)

    async def _save_entry(self, record: ReflectionRecord) -> str | None:
        try:
            saved = await self._store.add_reflection(record)
        except Exception as e:
            logger.warning("Failed to save reflection entry: %s", str(e))
            return None
        return saved.id

    async def score(
        self,
        marker: PendingReflection,
        response: str,
        user_id: str | None = None,
    ) -> tuple[float, str]:
        """Score a student's answer to a pending reflection question.

        Returns:
            Tuple of (score, follow_up).

        Raises:
            LLMError: If the scoring call fails.
        """
        reply = await self._llm.complete(
            _SCORE_PROMPT.format(
                prompt_used=marker.get("prompt_used", ""),
                response=response,
            ),
            model=self._config.models.default,
            temperature=0,
            max_tokens=300,
        )
        score, follow_up = parse_score(reply.content)

        entry_id = marker.get("reflection_entry_id")
        if user_id and entry_id:
            await self._update_entry(entry_id, response, follow_up, score)
        return score, follow_up

    async def _update_entry(
        self, entry_id: str, response: str, follow_up: str, score: float
    ) -> None:
        try:
            entry = await self._store.get_reflection(entry_id)
            if entry is None:
                logger.warning("Reflection entry not found: %s", entry_id)
                return
            entry.student_response = response
            entry.ai_follow_up = follow_up
            entry.insight_score = score
            await self._store.update_reflection(entry)
        except Exception as e:
            logger.warning("Failed to update reflection entry %s: %s", entry_id, str(e))

    async def __call__(self, state: PipelineState) -> dict[str, Any]:
        """REFLECT node: score a pending answer, or ask a new question."""
        marker = state.get("pending_reflection")
        user_id = state.get("user_id")

        if marker:
            score, follow_up = await self.score(marker, state.get("prompt", ""), user_id)
            logger.info("Scored reflection: score=%.2f, user=%s", score, user_id)
            return {
                "response_text": f"{score_emoji(score)} {follow_up}",
                "reflection": {"mode": "scored", "insight_score": score},
                "pending_reflection": None,
                "stages": [stage_record("reflect", "ok", f"scored {score:.2f}")],
            }

        result = await self.generate_prompt(
            state.get("prompt", ""),
            user_id=user_id,
            grade_level=state.get("grade_level"),
            conversation_history=state.get("conversation_history"),
            reflection_type=ReflectionType.REFLECT,
        )
        return {
            "response_text": append_reflection(state.get("response_text", ""), result.question),
            "reflection": {"mode": "prompted", "dimension": result.dimension},
            "pending_reflection": result.marker,
            "stages": [stage_record("reflect", "ok", f"prompted {result.dimension}")],
        }


def append_reflection(existing: str, question: str) -> str:
    """Append a reflection question section to a reply."""
    section = f"💭 **Reflection moment:** {question}"
    if not existing:
        return section
    return f"{existing}{REFLECTION_SEPARATOR}{section}"
