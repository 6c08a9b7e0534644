# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Intent routing for the learning pipeline.

``classify`` is a pure keyword matcher: ordered rule classes, first match
wins, LIFE_LOG checked before everything else. ``IntentRouter`` adds the
media override and an LLM fallback for messages the matcher leaves as
CHAT, then resolves the generation profile.
"""

import logging

from src.core.config.tutor import ModelProfile, RoutingRules, TutorConfig
from src.core.intelligence.llm import LLMClient, LLMError
from src.core.orchestration.states.pipeline import Intent, PipelineState

logger = logging.getLogger(__name__)

LIFE_LOG_PHRASES = (
    "i built",
    "i made",
    "i helped",
    "i cooked",
    "i baked",
    "i read",
    "i wrote",
    "i finished",
    "i completed",
    "i sewed",
    "i planted",
    "i gardened",
    "i volunteered",
    "i served",
)
BRAINSTORM_PHRASES = ("brainstorm", "idea")
INVESTIGATE_PHRASES = (
    "who profits",
    "follow the money",
    "investigate",
    "regulatory capture",
    "what really happened",
)
OPPORTUNITY_PHRASES = ("opportunit",)
REFLECT_PHRASES = (
    "i learned",
    "i realized",
    "i noticed",
    "what i found hard",
    "next time i would",
    "i struggled with",
    "it made me think",
)

_RULES: tuple[tuple[Intent, tuple[str, ...]], ...] = (
    (Intent.LIFE_LOG, LIFE_LOG_PHRASES),
    (Intent.BRAINSTORM, BRAINSTORM_PHRASES),
    (Intent.INVESTIGATE, INVESTIGATE_PHRASES),
    (Intent.OPPORTUNITY, OPPORTUNITY_PHRASES),
    (Intent.REFLECT, REFLECT_PHRASES),
)

# Labels the LLM fallback may return
LLM_INTENT_LABELS = (
    Intent.CHAT,
    Intent.LIFE_LOG,
    Intent.BRAINSTORM,
    Intent.INVESTIGATE,
    Intent.GEN_UI,
    Intent.OPPORTUNITY,
    Intent.REFLECT,
)


def classify(text: str) -> Intent:
    """Classify a message by keyword rules.

    Matching is case-insensitive substring search.
    """
    lowered = (text or "").lower()
    for intent, phrases in _RULES:
        if any(phrase in lowered for phrase in phrases):
            return intent
    return Intent.CHAT


def select_model_profile(intent: Intent, text: str, routing_rules: RoutingRules) -> ModelProfile:
    """Pick the generation tier for a routed message. Never changes the intent."""
    lowered = (text or "").lower()
    if intent == Intent.INVESTIGATE or any(
        kw.lower() in lowered for kw in routing_rules.investigation_keywords
    ):
        return ModelProfile.INVESTIGATION
    if any(kw.lower() in lowered for kw in routing_rules.deep_analysis_keywords):
        return ModelProfile.DEEP_ANALYSIS
    return ModelProfile.DEFAULT


def parse_intent_label(text: str) -> Intent | None:
    """Map an LLM label reply to an accepted Intent, or None."""
    label = (text or "").strip().strip(".").upper()
    for intent in LLM_INTENT_LABELS:
        if label == intent.value:
            return intent
    return None


class IntentRouter:
    """Routes a pipeline state to an intent and model.

    Attributes:
        llm: Client used for the fallback classifier; None disables it.
        config: Tutor configuration (models and routing rules).
    """

    def __init__(self, config: TutorConfig, llm: LLMClient | None = None) -> None:
        self._config = config
        self._llm = llm

    async def _llm_classify(self, text: str) -> Intent | None:
        if self._llm is None or not text.strip():
            return None
        labels = ", ".join(i.value for i in LLM_INTENT_LABELS)
        prompt = (
            f"Classify the user's request into one intent label exactly: {labels}.\n"
            "Return only the label.\n"
            f"User message: {text}"
        )
        try:
            response = await self._llm.complete(
                prompt,
                model=self._config.models.default,
                temperature=0,
                max_tokens=10,
            )
        except LLMError as e:
            logger.warning("Intent classifier unavailable, keeping CHAT: %s", e)
            return None
        return parse_intent_label(response.content)

    async def route(self, state: PipelineState) -> tuple[Intent, ModelProfile, str]:
        """Decide intent, generation profile and model for a state.

        Attached media wins over text. A pending reflection marker does not
        change the intent here; the executor uses it when dispatching.
        """
        text = state.get("prompt", "")
        attachments = state.get("attachments") or {}

        if attachments.get("image_url"):
            intent = Intent.IMAGE_LOG
        elif attachments.get("audio_base64"):
            intent = Intent.VOICE_LOG
        else:
            intent = classify(text)
            if intent == Intent.CHAT:
                intent = await self._llm_classify(text) or Intent.CHAT

        profile = select_model_profile(intent, text, self._config.models.routing_rules)
        model = self._config.models.model_for(profile)
        logger.debug("Routed message: intent=%s, profile=%s, model=%s", intent.value, profile.value, model)
        return intent, profile, model
