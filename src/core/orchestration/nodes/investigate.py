# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Source-grounded investigation node.

Retrieves documents similar to the question, orders them by source
priority (PRIMARY, CURATED, SECONDARY, MAINSTREAM), keeps the top five and
asks the investigation model for a cited summary.
"""

import logging
from typing import Any

from src.core.config.tutor import TutorConfig
from src.core.intelligence.llm import LLMClient
from src.core.memory.rag.retriever import Document, DocumentRetriever
from src.core.memory.stores.base import SourceType
from src.core.orchestration.states.pipeline import PipelineState, stage_record

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 8
MIN_SIMILARITY = 0.5
MAX_SOURCES = 5
CONTENT_PREVIEW_CHARS = 500

SOURCE_ORDER = {
    SourceType.PRIMARY: 0,
    SourceType.CURATED: 1,
    SourceType.SECONDARY: 2,
    SourceType.MAINSTREAM: 3,
}

_SYSTEM_PROMPT = """You are Adeline's Discernment Engine, an investigative research assistant. Your job is to help students think critically about institutions, corporations, and systems.

Rules:
- ALWAYS trace incentives: Who funded this? Who profits? Who regulated it and did they have conflicts of interest?
- PRIORITIZE primary sources (patents, congressional records, SEC filings, court documents, first-person accounts) over mainstream summaries.
- CENTER human impact. Lead with how real people were affected.
- CITE your sources with [SOURCE_TYPE] tags so the UI can color-code them.
- Be direct and concise. No hedging, no 'some people say.' Present the evidence and let the student draw conclusions.
- If the retrieved context is insufficient, say so honestly rather than filling gaps with generic information."""


def prioritize(documents: list[Document], limit: int = MAX_SOURCES) -> list[Document]:
    """Stable sort by source priority, then keep the first ``limit``."""
    return sorted(documents, key=lambda d: SOURCE_ORDER.get(d.source_type, len(SOURCE_ORDER)))[
        :limit
    ]


def format_sources(documents: list[Document]) -> str:
    return "\n".join(
        f"- [{d.source_type.value}] {d.title}: {d.content[:CONTENT_PREVIEW_CHARS]}"
        for d in documents
    )


class InvestigateNode:
    """INVESTIGATE agent node.

    Without a retriever the model is told no context was found.
    """

    def __init__(
        self,
        llm: LLMClient,
        config: TutorConfig,
        retriever: DocumentRetriever | None = None,
    ) -> None:
        self._llm = llm
        self._config = config
        self._retriever = retriever

    async def __call__(self, state: PipelineState) -> dict[str, Any]:
        prompt = state.get("prompt", "")
        model = state.get("selected_model") or self._config.models.investigation

        documents: list[Document] = []
        if self._retriever is not None:
            documents = await self._retriever.search(
                prompt, limit=SEARCH_LIMIT, min_similarity=MIN_SIMILARITY
            )
        top = prioritize(documents)
        sources_used = format_sources(top)

        response = await self._llm.complete(
            f"User question: {prompt}\n\n"
            "Top retrieved context (ordered by priority):\n"
            f"{sources_used or '- none found'}\n\n"
            "Respond with a concise investigation summary citing the sources used.",
            model=model,
            system_prompt=_SYSTEM_PROMPT,
            max_tokens=800,
        )
        logger.info("Investigation answered with %d sources (model=%s)", len(top), model)

        return {
            "response_text": response.content,
            "investigation": {
                "model": model,
                "summary": response.content,
                "sources_used": sources_used,
                "sources": [
                    {
                        "id": d.id,
                        "title": d.title,
                        "source_type": d.source_type.value,
                        "similarity": d.similarity,
                    }
                    for d in top
                ],
            },
            "stages": [stage_record("investigate", "ok", f"{len(top)} sources")],
        }
