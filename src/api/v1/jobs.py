# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Asynchronous job endpoints.

- POST / - Submit a chat message for background processing (202)
- GET /{job_id} - Poll a job, optionally long-polling with ``?wait=N``
- POST /process - Process a batch of pending jobs in this process

Completion is also published to the Redis channel ``job:{job_id}``.
"""

import asyncio
import logging
from datetime import datetime
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from src.api.dependencies import (
    get_content_guard,
    get_job_runner,
    require_process_secret,
    screen_prompt,
)
from src.api.v1.chat import ChatRequest
from src.core.config import get_settings
from src.core.memory.stores.base import JobRecord, JobStatus
from src.core.orchestration import JobRunner
from src.core.orchestration.jobs import JobNotFoundError
from src.core.orchestration.protocols import ContentGuard

logger = logging.getLogger(__name__)

router = APIRouter()

MAX_WAIT_SECONDS = 30
POLL_INTERVAL_SECONDS = 0.5
TERMINAL_STATUSES = (JobStatus.COMPLETED, JobStatus.FAILED)


# ============================================================================
# Response Models
# ============================================================================


class JobSubmitResponse(BaseModel):
    """Accepted job, or the immediate reply for a blocked message."""

    job_id: str | None = Field(description="Job ID to poll; None when answered immediately")
    immediate: bool = Field(False, description="True when no job was created")
    result: str | None = Field(None, description="Immediate reply")


class JobResponse(BaseModel):
    """Job state and, once finished, its result."""

    id: str
    status: str
    intent: str | None = None
    result: str | None = None
    error: str | None = None
    ui_payload: dict[str, Any] | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @classmethod
    def from_record(cls, job: JobRecord) -> "JobResponse":
        return cls(
            id=job.id,
            status=job.status.value,
            intent=job.intent,
            result=job.result,
            error=job.error,
            ui_payload=job.job_metadata.get("ui_payload"),
            metadata=job.job_metadata.get("pipeline") or {},
            created_at=job.created_at,
            started_at=job.started_at,
            completed_at=job.completed_at,
        )


class ProcessResponse(BaseModel):
    """Counts from one processing sweep."""

    claimed: int
    completed: int
    failed: int


# ============================================================================
# Endpoints
# ============================================================================


@router.post(
    "",
    response_model=JobSubmitResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Submit a chat job",
)
async def submit_job(
    request: ChatRequest,
    runner: Annotated[JobRunner, Depends(get_job_runner)],
    guard: Annotated[ContentGuard | None, Depends(get_content_guard)],
) -> JobSubmitResponse:
    """Store the message as a PENDING job and wake a worker."""
    prompt, blocked_reply = await screen_prompt(request.prompt, guard)
    if blocked_reply is not None:
        return JobSubmitResponse(job_id=None, immediate=True, result=blocked_reply)

    job = await runner.submit_job(prompt, request.to_context())
    return JobSubmitResponse(job_id=job.id)


@router.get(
    "/{job_id}",
    response_model=JobResponse,
    summary="Get job status",
)
async def get_job(
    job_id: str,
    runner: Annotated[JobRunner, Depends(get_job_runner)],
    wait: Annotated[
        int, Query(ge=0, description="Seconds to wait for completion (max 30)")
    ] = 0,
) -> JobResponse:
    """Return the job, waiting up to ``wait`` seconds for it to finish."""
    try:
        job = await runner.get_job(job_id)
        if wait > 0 and job.status not in TERMINAL_STATUSES:
            loop = asyncio.get_running_loop()
            deadline = loop.time() + min(wait, MAX_WAIT_SECONDS)
            while loop.time() < deadline:
                await asyncio.sleep(POLL_INTERVAL_SECONDS)
                job = await runner.get_job(job_id)
                if job.status in TERMINAL_STATUSES:
                    break
    except JobNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Job not found",
        ) from e

    return JobResponse.from_record(job)


@router.post(
    "/process",
    response_model=ProcessResponse,
    summary="Process pending jobs",
    dependencies=[Depends(require_process_secret)],
)
async def process_jobs(
    runner: Annotated[JobRunner, Depends(get_job_runner)],
    batch_size: Annotated[int | None, Query(ge=1, le=50)] = None,
) -> ProcessResponse:
    """Run one sweep in the API process, for deployments without workers."""
    size = batch_size or get_settings().worker.job_batch_size
    result = await runner.process_pending_jobs(batch_size=size)
    return ProcessResponse(**result.to_dict())
