# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Learning pipeline workflow using LangGraph.

Workflow Structure:
    router
        ↓
    [conditional dispatch by intent]
        life_log | investigate | brainstorm | opportunity | reflect
        image → life_log
        voice → life_log
        CHAT / GEN_UI go straight on
        ↓
    ui_planner
        ↓
    gap_detector
        ↓
    END

Every node is wrapped by ``contained``: a node that raises leaves the
state as it was and only appends an error StageRecord, so the UI planner
and gap detector still run and the caller always gets a reply.

``run_sync`` is the public entry point. It consults the semantic cache,
runs the graph, falls back to a persona chat reply when no node produced
text, and appends the gap nudge. It never raises.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass, field, fields
from typing import Any

from langgraph.graph import END, StateGraph

from src.core.config.tutor import TutorConfig
from src.core.intelligence.llm import LLMClient, LLMError, Message
from src.core.memory.mastery import MasteryEngine
from src.core.memory.rag.retriever import DocumentRetriever
from src.core.memory.semantic_cache import SemanticCache
from src.core.memory.stores.base import LearningStore
from src.core.orchestration.nodes import (
    BrainstormNode,
    GapDetector,
    ImageNode,
    InvestigateNode,
    LifeLogNode,
    OpportunityNode,
    ReflectionCoach,
    VoiceNode,
    ui_planner_node,
)
from src.core.orchestration.routing import IntentRouter, classify
from src.core.orchestration.states.pipeline import (
    Intent,
    PendingReflection,
    Phase,
    PipelineState,
    UIPayload,
    create_initial_pipeline_state,
    stage_record,
)
from src.utils.logging import log_context

logger = logging.getLogger(__name__)

NodeFn = Callable[[PipelineState], Awaitable[dict[str, Any]]]

DEGRADED_REPLY = (
    "I'm having trouble right now, but here's what I can tell you: "
    "your message is safe with me, so try again in a moment and we'll pick up right here."
)
MAX_HISTORY_TURNS = 10

# Intents whose replies do not depend on or change per-student records
CACHEABLE_INTENTS = frozenset({Intent.CHAT, Intent.GEN_UI, Intent.INVESTIGATE, Intent.OPPORTUNITY})

# Intents classified before the graph runs that must never be served from cache
_UNCACHED_HEURISTIC = frozenset({Intent.LIFE_LOG, Intent.REFLECT})

DISPATCH: dict[Intent, str] = {
    Intent.LIFE_LOG: "life_log",
    Intent.INVESTIGATE: "investigate",
    Intent.BRAINSTORM: "brainstorm",
    Intent.OPPORTUNITY: "opportunity",
    Intent.REFLECT: "reflect",
    Intent.IMAGE_LOG: "image",
    Intent.VOICE_LOG: "voice",
}


@dataclass
class PipelineContext:
    """Per-request inputs besides the prompt.

    Attributes:
        user_id: Learner id; None for anonymous chat.
        session_id: Conversation id.
        conversation_history: Prior turns as ``{"role", "content"}`` dicts.
        grade_level: Grade string.
        interests: Stated interests.
        service_goal: Optional service goal for project plans.
        image_url: Attached image (URL or data URI).
        audio_base64: Attached audio recording.
        pending_reflection: Marker returned with the previous reply.
        detected_gaps: Unresolved gap subjects already known for the learner.
    """

    user_id: str | None = None
    session_id: str | None = None
    conversation_history: list[dict[str, str]] = field(default_factory=list)
    grade_level: str | None = None
    interests: list[str] = field(default_factory=list)
    service_goal: str | None = None
    image_url: str | None = None
    audio_base64: str | None = None
    pending_reflection: PendingReflection | None = None
    detected_gaps: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "PipelineContext":
        """Build a context, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in (data or {}).items() if k in known})

    @property
    def has_media(self) -> bool:
        return bool(self.image_url or self.audio_base64)


@dataclass
class PipelineResult:
    """Outcome of one pipeline run."""

    intent: Intent
    response_text: str
    ui_payload: UIPayload | None
    metadata: dict[str, Any] = field(default_factory=dict)


def contained(stage: str, fn: NodeFn, phase: Phase | None = None) -> NodeFn:
    """Wrap a node so an exception becomes an error StageRecord.

    The failed node's partial update is discarded; the state seen by the
    next node is the one before the failure.
    """

    async def run(state: PipelineState) -> dict[str, Any]:
        try:
            update = await fn(state)
        except Exception as e:
            logger.exception("Pipeline stage %s failed: %s", stage, str(e))
            update = {"stages": [stage_record(stage, "error", f"{type(e).__name__}: {e}")]}
        if phase is not None:
            update = {**update, "phase": phase}
        return update

    run.__name__ = f"{stage}_contained"
    return run


class LearningPipeline:
    """LangGraph executor for the learning pipeline.

    Attributes:
        config: Tutor configuration, loaded once and read-only.
        llm: Completion client shared by all nodes.
        store: Learning store (concepts, transcripts, gaps, reflections).
        mastery: Mastery engine used for review scheduling and ZPD context.
        retriever: Optional document retriever for INVESTIGATE.
        semantic_cache: Optional response cache.

    Example:
        >>> pipeline = LearningPipeline(config, llm, store, mastery)
        >>> result = await pipeline.run_sync("I baked bread", PipelineContext(user_id="u1"))
        >>> result.intent
        <Intent.LIFE_LOG: 'LIFE_LOG'>
    """

    def __init__(
        self,
        config: TutorConfig,
        llm: LLMClient,
        store: LearningStore,
        mastery: MasteryEngine,
        retriever: DocumentRetriever | None = None,
        semantic_cache: SemanticCache | None = None,
        router: IntentRouter | None = None,
    ) -> None:
        self._config = config
        self._llm = llm
        self._store = store
        self._mastery = mastery
        self._semantic_cache = semantic_cache
        self._router = router or IntentRouter(config, llm)

        reflection_coach = ReflectionCoach(llm, config, store)
        self._nodes: dict[str, NodeFn] = {
            "life_log": LifeLogNode(llm, config, store, mastery, reflection_coach),
            "investigate": InvestigateNode(llm, config, retriever),
            "brainstorm": BrainstormNode(llm, config, mastery),
            "opportunity": OpportunityNode(llm, config, store),
            "reflect": reflection_coach,
            "image": ImageNode(llm, config),
            "voice": VoiceNode(llm, config),
        }
        self._gap_detector = GapDetector(config, store)

        self._graph = self._build_graph()
        self._app = self._graph.compile()

    # =========================================================================
    # Graph
    # =========================================================================

    def _build_graph(self) -> StateGraph:
        graph = StateGraph(PipelineState)

        graph.add_node("router", contained("router", self._route, Phase.ROUTED))
        for name, node in self._nodes.items():
            graph.add_node(name, contained(name, node, Phase.AGENT_RUN))
        graph.add_node("ui_planner", contained("ui_planner", ui_planner_node, Phase.UI_PLANNED))
        graph.add_node(
            "gap_detector", contained("gap_detector", self._gap_detector, Phase.GAP_CHECKED)
        )

        graph.set_entry_point("router")
        graph.add_conditional_edges(
            "router",
            self._dispatch,
            {**{name: name for name in self._nodes}, "ui_planner": "ui_planner"},
        )

        graph.add_edge("image", "life_log")
        graph.add_edge("voice", "life_log")
        for name in ("life_log", "investigate", "brainstorm", "opportunity", "reflect"):
            graph.add_edge(name, "ui_planner")
        graph.add_edge("ui_planner", "gap_detector")
        graph.add_edge("gap_detector", END)

        return graph

    async def _route(self, state: PipelineState) -> dict[str, Any]:
        intent, profile, model = await self._router.route(state)
        return {
            "intent": intent,
            "model_profile": profile.value,
            "selected_model": model,
            "stages": [stage_record("router", "ok", intent.value)],
        }

    def _dispatch(self, state: PipelineState) -> str:
        intent = state.get("intent", Intent.CHAT)
        if intent == Intent.CHAT and state.get("pending_reflection"):
            return "reflect"
        return DISPATCH.get(intent, "ui_planner")

    # =========================================================================
    # Public entry point
    # =========================================================================

    async def run_sync(self, prompt: str, context: PipelineContext | None = None) -> PipelineResult:
        """Run the pipeline for one message.

        Args:
            prompt: Student message.
            context: Learner, conversation and attachments.

        Returns:
            PipelineResult. Failures produce a degraded reply, never an
            exception.
        """
        context = context or PipelineContext()
        with log_context(user_id=context.user_id, session_id=context.session_id):
            try:
                return await self._run(prompt, context)
            except Exception as e:
                logger.exception("Learning pipeline failed: %s", str(e))
                return PipelineResult(
                    intent=Intent.CHAT,
                    response_text=DEGRADED_REPLY,
                    ui_payload=None,
                    metadata={
                        "stages": [stage_record("pipeline", "error", f"{type(e).__name__}: {e}")],
                        "cached": False,
                    },
                )

    def _cache_eligible(self, prompt: str, context: PipelineContext) -> bool:
        if self._semantic_cache is None or context.has_media or context.pending_reflection:
            return False
        # Learner-specific payloads
        if context.detected_gaps:
            return False
        return classify(prompt) not in _UNCACHED_HEURISTIC

    async def _run(self, prompt: str, context: PipelineContext) -> PipelineResult:
        use_cache = self._cache_eligible(prompt, context)
        if use_cache:
            hit = await self._semantic_cache.lookup(prompt)
            if hit is not None:
                try:
                    intent = Intent(hit.intent)
                except ValueError:
                    intent = Intent.CHAT
                return PipelineResult(
                    intent=intent,
                    response_text=hit.response_text or "",
                    ui_payload=hit.ui_payload,
                    metadata={
                        "cached": True,
                        "similarity": hit.similarity,
                        "phase": Phase.DONE.value,
                        "stages": [stage_record("semantic_cache", "ok", "hit")],
                    },
                )

        state = create_initial_pipeline_state(
            prompt,
            user_id=context.user_id,
            session_id=context.session_id,
            conversation_history=context.conversation_history,
            grade_level=context.grade_level,
            interests=context.interests,
            service_goal=context.service_goal,
            image_url=context.image_url,
            audio_base64=context.audio_base64,
            pending_reflection=context.pending_reflection,
            detected_gaps=context.detected_gaps,
        )
        final: PipelineState = await self._app.ainvoke(state)

        intent = final.get("intent", Intent.CHAT)
        stages = list(final.get("stages", []))
        response_text = final.get("response_text") or ""
        if not response_text.strip():
            response_text = await self._chat_reply(final)
            stages.append(stage_record("chat", "ok" if response_text != DEGRADED_REPLY else "error"))

        ui_payload = final.get("ui_payload")
        failed = any(s["outcome"] == "error" for s in stages)
        if use_cache and not failed and intent in CACHEABLE_INTENTS and ui_payload:
            await self._semantic_cache.store(prompt, intent.value, response_text, dict(ui_payload))

        nudge = final.get("gap_nudge")
        if nudge:
            response_text = f"{response_text}\n\n{nudge}"

        logger.info(
            "Pipeline finished: intent=%s, ui=%s, errors=%d",
            intent.value,
            ui_payload["component"] if ui_payload else None,
            sum(1 for s in stages if s["outcome"] == "error"),
        )
        return PipelineResult(
            intent=intent,
            response_text=response_text,
            ui_payload=ui_payload,
            metadata={
                "cached": False,
                "phase": Phase.DONE.value,
                "model_profile": final.get("model_profile"),
                "selected_model": final.get("selected_model"),
                "stages": stages,
                "pending_reflection": final.get("pending_reflection"),
                "life_credit": final.get("life_credit"),
                "transcript_draft": final.get("transcript_draft"),
                "investigation": final.get("investigation"),
                "reflection": final.get("reflection"),
                "media": final.get("media"),
                "detected_gaps": final.get("detected_gaps", []),
            },
        )

    # =========================================================================
    # General chat
    # =========================================================================

    async def _student_context(self, state: PipelineState) -> str | None:
        lines = []
        if state.get("grade_level"):
            lines.append(f"Grade level: {state['grade_level']}")
        if state.get("interests"):
            lines.append(f"Interests: {', '.join(state['interests'])}")

        user_id = state.get("user_id")
        if user_id:
            try:
                lines.append(await self._mastery.get_zpd_summary(user_id))
                lines.append(await self._mastery.get_due_reviews_summary(user_id))
            except Exception as e:
                logger.warning("Failed to load mastery context for %s: %s", user_id, str(e))
        return "\n".join(lines) or None

    async def _chat_reply(self, state: PipelineState) -> str:
        """Persona reply used when no agent node produced text."""
        history = (state.get("conversation_history") or [])[-MAX_HISTORY_TURNS:]
        try:
            system_prompt = self._config.system_prompt(await self._student_context(state))
            messages = [
                Message(role="system", content=system_prompt),
                *Message.from_history(history),
                Message(role="user", content=state.get("prompt", "")),
            ]
            response = await self._llm.complete_with_messages(
                messages,
                model=state.get("selected_model") or self._config.models.default,
            )
        except LLMError as e:
            logger.warning("Chat reply failed, returning degraded reply: %s", e)
            return DEGRADED_REPLY
        return response.content or DEGRADED_REPLY
