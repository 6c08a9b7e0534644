# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""PostgreSQL implementation of JobStore."""

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.memory.stores.base import (
    JobNotFoundError,
    JobRecord,
    JobStatus,
    JobStore,
    check_transition,
)
from src.infrastructure.database.connection import Database
from src.infrastructure.database.models.jobs import AIJobModel
from src.utils.datetime import utc_now

logger = logging.getLogger(__name__)

_TERMINAL = [JobStatus.COMPLETED.value, JobStatus.FAILED.value]


def _job(row: AIJobModel) -> JobRecord:
    return JobRecord(
        id=row.id,
        prompt=row.prompt,
        session_id=row.session_id,
        user_id=row.user_id,
        status=JobStatus(row.status),
        intent=row.intent,
        result=row.result,
        job_metadata=dict(row.job_metadata or {}),
        error=row.error,
        created_at=row.created_at,
        started_at=row.started_at,
        completed_at=row.completed_at,
    )


class SqlJobStore(JobStore):
    """JobStore backed by the ``ai_jobs`` table."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def _locked(self, session: AsyncSession, job_id: str) -> AIJobModel:
        row = await session.scalar(
            select(AIJobModel).where(AIJobModel.id == job_id).with_for_update()
        )
        if row is None:
            raise JobNotFoundError(job_id)
        return row

    async def create_job(self, job: JobRecord) -> JobRecord:
        async with self._db.session() as session:
            session.add(
                AIJobModel(
                    id=job.id,
                    prompt=job.prompt,
                    session_id=job.session_id,
                    user_id=job.user_id,
                    status=JobStatus(job.status).value,
                    intent=job.intent,
                    job_metadata=dict(job.job_metadata),
                    created_at=job.created_at,
                )
            )
        return job

    async def get_job(self, job_id: str) -> JobRecord | None:
        async with self._db.session() as session:
            row = await session.get(AIJobModel, job_id)
        return _job(row) if row else None

    async def list_pending_jobs(self, limit: int) -> list[JobRecord]:
        async with self._db.session() as session:
            rows = (
                await session.execute(
                    select(AIJobModel)
                    .where(AIJobModel.status == JobStatus.PENDING.value)
                    .order_by(AIJobModel.created_at.asc())
                    .limit(limit)
                )
            ).scalars().all()
        return [_job(r) for r in rows]

    async def claim_job(self, job_id: str) -> JobRecord | None:
        async with self._db.session() as session:
            row = (
                await session.execute(
                    update(AIJobModel)
                    .where(
                        AIJobModel.id == job_id,
                        AIJobModel.status == JobStatus.PENDING.value,
                    )
                    .values(status=JobStatus.PROCESSING.value, started_at=utc_now())
                    .returning(AIJobModel)
                )
            ).scalar_one_or_none()
        if row is None:
            logger.debug("Job %s was not pending, skipping claim", job_id)
            return None
        return _job(row)

    async def set_job_intent(self, job_id: str, intent: str) -> None:
        async with self._db.session() as session:
            await session.execute(
                update(AIJobModel).where(AIJobModel.id == job_id).values(intent=intent)
            )

    async def complete_job(
        self,
        job_id: str,
        result: str,
        metadata: dict[str, Any] | None = None,
    ) -> JobRecord:
        async with self._db.session() as session:
            row = await self._locked(session, job_id)
            check_transition(job_id, JobStatus(row.status), JobStatus.COMPLETED)
            row.status = JobStatus.COMPLETED.value
            row.result = result
            row.completed_at = utc_now()
            if metadata is not None:
                row.job_metadata = {**(row.job_metadata or {}), **metadata}
            record = _job(row)
        return record

    async def fail_job(self, job_id: str, error: str) -> JobRecord:
        async with self._db.session() as session:
            row = await self._locked(session, job_id)
            check_transition(job_id, JobStatus(row.status), JobStatus.FAILED)
            row.status = JobStatus.FAILED.value
            row.error = error
            row.completed_at = utc_now()
            record = _job(row)
        return record

    async def delete_finished_jobs(self, older_than: datetime) -> int:
        async with self._db.session() as session:
            result = await session.execute(
                delete(AIJobModel).where(
                    AIJobModel.status.in_(_TERMINAL),
                    AIJobModel.created_at < older_than,
                )
            )
        return result.rowcount or 0
