# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""FastAPI dependency injection definitions.

Dependencies are used to:
- Get the learning and job stores over the shared database
- Get the optional Redis and Qdrant clients
- Build the pipeline, job runner, mastery engine and opportunity scout
- Apply the configured content guard

Example:
    @router.post("/chat")
    async def chat(
        request: ChatRequest,
        pipeline: LearningPipeline = Depends(get_pipeline),
    ):
        ...
"""

import logging
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from src.core.config import get_settings
from src.core.intelligence import LLMClient
from src.core.memory import JobStore, LearningStore, MasteryEngine
from src.core.orchestration import JobRunner, LearningPipeline
from src.core.orchestration.nodes import ProactiveOpportunityScout
from src.core.orchestration.protocols import ContentGuard
from src.infrastructure.cache import RedisClient, RedisError, get_redis
from src.infrastructure.database import (
    Database,
    DatabaseError,
    SqlJobStore,
    SqlLearningStore,
    get_database,
)
from src.infrastructure.vectors import QdrantVectorClient, VectorStoreError, get_qdrant
from src.services import build_job_runner, build_learning_pipeline, get_tutor_config

logger = logging.getLogger(__name__)

# Deployment-provided PII masking and moderation
_content_guard: ContentGuard | None = None


def set_content_guard(guard: ContentGuard | None) -> None:
    """Install the content guard applied to incoming prompts."""
    global _content_guard
    _content_guard = guard


def get_content_guard() -> ContentGuard | None:
    return _content_guard


# =========================================================================
# Infrastructure
# =========================================================================


def get_db() -> Database:
    """Get the shared database.

    Raises:
        HTTPException: 503 if the database is not initialized.
    """
    try:
        return get_database()
    except DatabaseError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database not available",
        ) from e


def get_optional_redis() -> RedisClient | None:
    """Get the Redis client, or None when Redis is unavailable."""
    try:
        return get_redis()
    except RedisError:
        return None


def get_optional_qdrant() -> QdrantVectorClient | None:
    """Get the Qdrant client, or None when Qdrant is unavailable."""
    try:
        return get_qdrant()
    except VectorStoreError:
        return None


def get_learning_store(db: Annotated[Database, Depends(get_db)]) -> LearningStore:
    return SqlLearningStore(db)


def get_job_store(db: Annotated[Database, Depends(get_db)]) -> JobStore:
    return SqlJobStore(db)


# =========================================================================
# Services
# =========================================================================


def get_pipeline(
    store: Annotated[LearningStore, Depends(get_learning_store)],
    redis: Annotated[RedisClient | None, Depends(get_optional_redis)],
    qdrant: Annotated[QdrantVectorClient | None, Depends(get_optional_qdrant)],
) -> LearningPipeline:
    return build_learning_pipeline(store, redis=redis, qdrant=qdrant)


def _trigger_processing() -> None:
    from src.infrastructure.background.tasks import process_pending_jobs_task

    process_pending_jobs_task.send()


def get_job_runner(
    learning_store: Annotated[LearningStore, Depends(get_learning_store)],
    job_store: Annotated[JobStore, Depends(get_job_store)],
    redis: Annotated[RedisClient | None, Depends(get_optional_redis)],
    qdrant: Annotated[QdrantVectorClient | None, Depends(get_optional_qdrant)],
) -> JobRunner:
    """Job runner whose submissions wake a dramatiq worker."""
    return build_job_runner(
        learning_store,
        job_store,
        redis=redis,
        qdrant=qdrant,
        trigger=_trigger_processing,
    )


def get_mastery_engine(
    store: Annotated[LearningStore, Depends(get_learning_store)],
) -> MasteryEngine:
    return MasteryEngine(store, history_limit=get_settings().pipeline.mastery_history_limit)


def get_scout(
    store: Annotated[LearningStore, Depends(get_learning_store)],
) -> ProactiveOpportunityScout:
    config = get_tutor_config()
    return ProactiveOpportunityScout(LLMClient(model=config.models.default), config, store)


# =========================================================================
# Authorization
# =========================================================================


def require_process_secret(
    authorization: Annotated[str | None, Header()] = None,
) -> None:
    """Guard the manual job sweep with ``WORKER_PROCESS_SECRET`` when set.

    Raises:
        HTTPException: 401 if the bearer token does not match.
    """
    secret = get_settings().worker.process_secret
    if secret is None:
        return
    if authorization != f"Bearer {secret.get_secret_value()}":
        logger.warning("Rejected job sweep request with invalid credentials")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )


# =========================================================================
# Content safety
# =========================================================================

BLOCKED_MESSAGE = "Let's keep our conversation focused on learning!"


async def screen_prompt(prompt: str, guard: ContentGuard | None) -> tuple[str, str | None]:
    """Moderate then mask a student prompt.

    Returns:
        ``(masked_prompt, None)`` when allowed, or ``(prompt, reply)`` with
        the reply to send instead when moderation blocks the message.
    """
    if guard is None:
        return prompt, None

    moderation = await guard.moderate(prompt)
    if not moderation.allowed:
        logger.info("Prompt blocked by moderation: %s", ", ".join(moderation.categories))
        return prompt, moderation.reason or BLOCKED_MESSAGE

    masked = guard.mask(prompt)
    if masked.found:
        logger.info("Masked %d PII matches in prompt", len(masked.found))
    return masked.masked_text, None
