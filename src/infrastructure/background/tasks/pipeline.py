# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pipeline job background tasks.

``process_pending_jobs_task`` is sent after every job submission and on a
short interval by the scheduler; ``cleanup_old_jobs_task`` applies the job
retention policy once a day.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import dramatiq

from src.core.config import get_settings
from src.core.orchestration import JobRunner
from src.infrastructure.background.broker import Priority, Queues, setup_dramatiq
from src.infrastructure.background.tasks.base import run_async
from src.infrastructure.cache import RedisClient, RedisError
from src.infrastructure.database import SqlJobStore, SqlLearningStore, get_worker_database
from src.infrastructure.vectors import QdrantVectorClient, VectorStoreError
from src.services import build_job_runner

# Setup broker before defining actors
setup_dramatiq()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def worker_job_runner() -> AsyncIterator[JobRunner]:
    """JobRunner bound to this worker thread's database and event loop.

    Redis and Qdrant are optional here: without Redis there is no semantic
    cache or completion notification, without Qdrant investigations run
    without retrieved sources.
    """
    settings = get_settings()
    database = get_worker_database()

    redis: RedisClient | None = RedisClient(settings)
    try:
        await redis.connect()
    except RedisError as e:
        logger.warning("Worker running without Redis: %s", e)
        redis = None

    qdrant: QdrantVectorClient | None = QdrantVectorClient(settings)
    try:
        await qdrant.connect()
    except VectorStoreError as e:
        logger.warning("Worker running without Qdrant: %s", e)
        qdrant = None

    try:
        yield build_job_runner(
            SqlLearningStore(database),
            SqlJobStore(database),
            redis=redis,
            qdrant=qdrant,
        )
    finally:
        if redis is not None:
            await redis.close()
        if qdrant is not None:
            await qdrant.close()


@dramatiq.actor(
    queue_name=Queues.PIPELINE,
    max_retries=0,
    time_limit=600000,  # 10 minutes
    priority=Priority.HIGH,
)
def process_pending_jobs_task(batch_size: int | None = None) -> dict[str, Any]:
    """Claim and process a batch of pending pipeline jobs.

    Args:
        batch_size: Jobs per sweep; defaults to the worker setting.

    Returns:
        Claimed, completed and failed counts.
    """
    size = batch_size or get_settings().worker.job_batch_size

    async def _process() -> dict[str, Any]:
        async with worker_job_runner() as runner:
            result = await runner.process_pending_jobs(batch_size=size)
        return result.to_dict()

    return run_async(_process())


@dramatiq.actor(
    queue_name=Queues.MAINTENANCE,
    max_retries=1,
    time_limit=300000,  # 5 minutes
    priority=Priority.LOW,
)
def cleanup_old_jobs_task(older_than_days: int | None = None) -> dict[str, Any]:
    """Delete finished jobs past the retention window."""
    days = older_than_days or get_settings().worker.job_retention_days

    async def _cleanup() -> dict[str, Any]:
        async with worker_job_runner() as runner:
            deleted = await runner.cleanup_old_jobs(older_than_days=days)
        return {"deleted": deleted, "older_than_days": days}

    return run_async(_cleanup())


def get_pipeline_actors() -> list:
    """All pipeline actors."""
    return [
        process_pending_jobs_task,
        cleanup_old_jobs_task,
    ]
