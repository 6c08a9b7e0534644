# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Background task actors for Adeline.

- Pipeline: process pending pipeline jobs
- Maintenance: delete finished jobs past retention

Usage:
    from src.infrastructure.background.tasks import process_pending_jobs_task

    process_pending_jobs_task.send()

Running Workers:
    dramatiq src.infrastructure.background.tasks --processes 2 --threads 4
"""

from src.infrastructure.background.tasks.base import run_async
from src.infrastructure.background.tasks.pipeline import (
    cleanup_old_jobs_task,
    get_pipeline_actors,
    process_pending_jobs_task,
    worker_job_runner,
)


def get_all_actors() -> list:
    """All registered actors, for worker registration."""
    return get_pipeline_actors()


__all__ = [
    "cleanup_old_jobs_task",
    "get_all_actors",
    "get_pipeline_actors",
    "process_pending_jobs_task",
    "run_async",
    "worker_job_runner",
]
