# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Construction of the tutor services.

The API process and the dramatiq workers build the same object graph:

    TutorConfig ─┐
    LLMClient ───┼─> LearningPipeline ─> JobRunner
    stores ──────┤        ↑
    MasteryEngine┘   SemanticCache, DocumentRetriever (optional)

The tutor configuration is loaded once per process and shared read-only.
"""

import logging
from functools import lru_cache
from typing import Any, Callable

from src.core.config import Settings, TutorConfig, get_settings, load_tutor_config
from src.core.intelligence import EmbeddingService, LLMClient
from src.core.memory import JobStore, LearningStore, MasteryEngine, SemanticCache
from src.core.memory.rag import DocumentRetriever
from src.core.orchestration import JobRunner, LearningPipeline
from src.infrastructure.cache import RedisClient
from src.infrastructure.vectors import QdrantVectorClient

logger = logging.getLogger(__name__)


@lru_cache
def get_tutor_config() -> TutorConfig:
    """Load the tutor configuration named in settings (cached)."""
    settings = get_settings()
    config = load_tutor_config(
        settings.pipeline.tutor_config_path,
        settings.pipeline.tutor_config_override_path,
    )
    logger.info("Loaded tutor config from %s", settings.pipeline.tutor_config_path)
    return config


def build_learning_pipeline(
    store: LearningStore,
    redis: RedisClient | None = None,
    qdrant: QdrantVectorClient | None = None,
    config: TutorConfig | None = None,
    llm: LLMClient | None = None,
    settings: Settings | None = None,
) -> LearningPipeline:
    """Build a LearningPipeline over the given collaborators.

    Args:
        store: Learning store.
        redis: Enables the semantic cache when given (and enabled in settings).
        qdrant: Enables document retrieval for investigations when given.
        config: Tutor configuration; defaults to the cached one.
        llm: Completion client; a default one is created when omitted.
        settings: Application settings.

    Returns:
        Configured LearningPipeline.
    """
    settings = settings or get_settings()
    config = config or get_tutor_config()
    llm = llm or LLMClient(model=config.models.default)
    mastery = MasteryEngine(store, history_limit=settings.pipeline.mastery_history_limit)

    embedding = None
    if redis is not None or qdrant is not None:
        embedding = EmbeddingService(model=config.models.embeddings)

    semantic_cache = None
    if redis is not None and settings.pipeline.semantic_cache_enabled:
        semantic_cache = SemanticCache(redis, embedding)

    retriever = None
    if qdrant is not None:
        retriever = DocumentRetriever(qdrant, embedding, settings.qdrant.documents_collection)

    return LearningPipeline(
        config,
        llm,
        store,
        mastery,
        retriever=retriever,
        semantic_cache=semantic_cache,
    )


def build_job_runner(
    learning_store: LearningStore,
    job_store: JobStore,
    redis: RedisClient | None = None,
    qdrant: QdrantVectorClient | None = None,
    trigger: Callable[[], Any] | None = None,
) -> JobRunner:
    """Build a JobRunner with its pipeline."""
    pipeline = build_learning_pipeline(learning_store, redis=redis, qdrant=qdrant)
    return JobRunner(job_store, pipeline, redis=redis, trigger=trigger)
