# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Asynchronous pipeline jobs.

Flow:
    1. ``submit_job`` stores a PENDING job (context kept in job_metadata)
       and optionally triggers a worker.
    2. ``process_pending_jobs`` claims up to ``batch_size`` jobs, runs the
       pipeline for each concurrently and records COMPLETED or FAILED.
    3. Clients poll ``get_job``; completion is also published to the Redis
       channel ``job:{id}``.

Claims are atomic, so two workers sweeping at once never run the same job.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from src.core.memory.stores.base import (
    JobNotFoundError,
    JobRecord,
    JobStateError,
    JobStatus,
    JobStore,
)
from src.core.orchestration.workflows.pipeline import LearningPipeline, PipelineContext
from src.infrastructure.cache import RedisClient, RedisError
from src.utils.datetime import utc_now
from src.utils.logging import log_context

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 5
DEFAULT_RETENTION_DAYS = 7


def job_channel(job_id: str) -> str:
    return f"job:{job_id}"


@dataclass
class BatchResult:
    """Counts from one processing sweep."""

    claimed: int = 0
    completed: int = 0
    failed: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"claimed": self.claimed, "completed": self.completed, "failed": self.failed}


class JobRunner:
    """Submits, processes and reports asynchronous pipeline jobs.

    Attributes:
        store: Job persistence.
        pipeline: Learning pipeline that produces each reply.
        redis: Optional client for completion notifications.
        trigger: Optional callable that wakes a worker after submission.
    """

    def __init__(
        self,
        store: JobStore,
        pipeline: LearningPipeline,
        redis: RedisClient | None = None,
        trigger: Callable[[], Any] | None = None,
    ) -> None:
        self._store = store
        self._pipeline = pipeline
        self._redis = redis
        self._trigger = trigger

    async def submit_job(self, prompt: str, context: PipelineContext | None = None) -> JobRecord:
        """Create a PENDING job.

        Args:
            prompt: Student message.
            context: Request context stored with the job.

        Returns:
            The created job.
        """
        context = context or PipelineContext()
        job = await self._store.create_job(
            JobRecord(
                prompt=prompt,
                session_id=context.session_id or "",
                user_id=context.user_id,
                job_metadata={"context": context.to_dict()},
            )
        )
        logger.info("Submitted job %s (user=%s)", job.id, context.user_id)

        if self._trigger is not None:
            try:
                self._trigger()
            except Exception as e:
                # The periodic sweep still picks the job up
                logger.warning("Failed to trigger job processing for %s: %s", job.id, str(e))
        return job

    async def get_job(self, job_id: str) -> JobRecord:
        """Fetch a job.

        Raises:
            JobNotFoundError: If no such job exists.
        """
        job = await self._store.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    async def process_pending_jobs(self, batch_size: int = DEFAULT_BATCH_SIZE) -> BatchResult:
        """Process up to ``batch_size`` pending jobs concurrently."""
        pending = await self._store.list_pending_jobs(batch_size)
        result = BatchResult()
        if not pending:
            return result

        outcomes = await asyncio.gather(
            *(self._process_job(job.id) for job in pending),
            return_exceptions=True,
        )
        for job, outcome in zip(pending, outcomes):
            if isinstance(outcome, BaseException):
                logger.error("Unexpected error processing job %s: %s", job.id, outcome)
                result.claimed += 1
                result.failed += 1
            elif outcome is None:
                continue
            else:
                result.claimed += 1
                if outcome == JobStatus.COMPLETED:
                    result.completed += 1
                else:
                    result.failed += 1

        logger.info(
            "Processed job batch: claimed=%d, completed=%d, failed=%d",
            result.claimed,
            result.completed,
            result.failed,
        )
        return result

    async def _process_job(self, job_id: str) -> JobStatus | None:
        """Run one job. Returns its final status, or None if not claimed."""
        job = await self._store.claim_job(job_id)
        if job is None:
            logger.debug("Job %s already claimed", job_id)
            return None

        with log_context(job_id=job_id):
            context = PipelineContext.from_dict(job.job_metadata.get("context"))
            try:
                result = await self._pipeline.run_sync(job.prompt, context)
                await self._store.set_job_intent(job_id, result.intent.value)
                await self._store.complete_job(
                    job_id,
                    result.response_text,
                    metadata={
                        "ui_payload": result.ui_payload,
                        "pipeline": result.metadata,
                    },
                )
            except JobStateError:
                raise
            except Exception as e:
                logger.exception("Job %s failed: %s", job_id, str(e))
                await self._store.fail_job(job_id, str(e))
                await self._notify(job_id, {"status": JobStatus.FAILED.value, "error": str(e)})
                return JobStatus.FAILED

            await self._notify(
                job_id,
                {
                    "status": JobStatus.COMPLETED.value,
                    "intent": result.intent.value,
                    "result": result.response_text,
                },
            )
            return JobStatus.COMPLETED

    async def _notify(self, job_id: str, message: dict[str, Any]) -> None:
        if self._redis is None:
            return
        try:
            await self._redis.publish(job_channel(job_id), {"job_id": job_id, **message})
        except RedisError as e:
            logger.warning("Failed to publish job notification for %s: %s", job_id, e)

    async def cleanup_old_jobs(self, older_than_days: int = DEFAULT_RETENTION_DAYS) -> int:
        """Delete finished jobs created more than ``older_than_days`` ago."""
        cutoff = utc_now() - timedelta(days=older_than_days)
        deleted = await self._store.delete_finished_jobs(cutoff)
        logger.info("Deleted %d finished jobs older than %d days", deleted, older_than_days)
        return deleted


__all__ = [
    "BatchResult",
    "JobNotFoundError",
    "JobRunner",
    "JobStateError",
    "job_channel",
]
