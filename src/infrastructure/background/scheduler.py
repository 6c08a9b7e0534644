# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Scheduler for periodic Dramatiq tasks.

Uses APScheduler to send Dramatiq actors on a cron or interval schedule.
Two tasks are registered by ``start_scheduler``:

- a job sweep every ``WORKER_POLL_INTERVAL_SECONDS`` that picks up jobs
  whose submission-time trigger was lost
- the daily job retention cleanup (``WORKER_CLEANUP_CRON``)

Example:
    from src.infrastructure.background.scheduler import start_scheduler

    scheduler = await start_scheduler()
    print(scheduler.get_stats())
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable
from uuid import uuid4

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from src.core.config import get_settings
from src.utils.datetime import utc_now

logger = logging.getLogger(__name__)


@dataclass
class ScheduledTask:
    """A periodic actor invocation.

    Attributes:
        name: Display name.
        actor_name: Actor exported by ``src.infrastructure.background.tasks``.
        args: Actor arguments.
        kwargs: Actor keyword arguments.
        id: Scheduler job id.
        last_run: When the actor was last sent.
        run_count: Number of successful sends.
        error_count: Number of failed sends.
    """

    name: str
    actor_name: str
    args: tuple = field(default_factory=tuple)
    kwargs: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid4()))
    last_run: datetime | None = None
    run_count: int = 0
    error_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "actor_name": self.actor_name,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "run_count": self.run_count,
            "error_count": self.error_count,
        }


class DramatiqScheduler:
    """Sends Dramatiq actors on APScheduler triggers."""

    def __init__(self, actor_lookup: Callable[[str], Any] | None = None) -> None:
        self._scheduler: AsyncIOScheduler | None = None
        self._tasks: dict[str, ScheduledTask] = {}
        self._running = False
        self._actor_lookup = actor_lookup or _lookup_actor

    @property
    def is_running(self) -> bool:
        return self._running

    def add_cron_task(
        self,
        name: str,
        actor_name: str,
        cron_expression: str,
        args: tuple = (),
        kwargs: dict[str, Any] | None = None,
    ) -> ScheduledTask:
        """Add a cron-scheduled task.

        Args:
            name: Task name.
            actor_name: Dramatiq actor to send.
            cron_expression: Five-field crontab expression.
            args: Actor arguments.
            kwargs: Actor keyword arguments.

        Raises:
            ValueError: If the cron expression is invalid.
        """
        trigger = CronTrigger.from_crontab(cron_expression, timezone="UTC")
        task = ScheduledTask(name=name, actor_name=actor_name, args=args, kwargs=kwargs or {})
        self._register(task, trigger)
        logger.info("Added cron task: %s (%s)", name, cron_expression)
        return task

    def add_interval_task(
        self,
        name: str,
        actor_name: str,
        seconds: int = 0,
        minutes: int = 0,
        hours: int = 0,
        args: tuple = (),
        kwargs: dict[str, Any] | None = None,
    ) -> ScheduledTask:
        """Add an interval-scheduled task."""
        if seconds <= 0 and minutes <= 0 and hours <= 0:
            raise ValueError("Interval must be positive")
        trigger = IntervalTrigger(seconds=seconds, minutes=minutes, hours=hours)
        task = ScheduledTask(name=name, actor_name=actor_name, args=args, kwargs=kwargs or {})
        self._register(task, trigger)
        logger.info("Added interval task: %s (every %dh %dm %ds)", name, hours, minutes, seconds)
        return task

    def _register(self, task: ScheduledTask, trigger: Any) -> None:
        self._tasks[task.id] = task
        if self._scheduler is not None:
            self._scheduler.add_job(
                self._execute_task,
                trigger=trigger,
                args=[task.id],
                id=task.id,
                name=task.name,
            )

    async def _execute_task(self, task_id: str) -> None:
        task = self._tasks.get(task_id)
        if task is None:
            return

        try:
            actor = self._actor_lookup(task.actor_name)
            if actor is None:
                raise ValueError(f"Actor not found: {task.actor_name}")
            actor.send(*task.args, **task.kwargs)
        except Exception as e:
            task.error_count += 1
            logger.error("Scheduled task %s failed: %s", task.name, str(e))
            return

        task.last_run = utc_now()
        task.run_count += 1
        logger.debug("Scheduled task %s sent to queue", task.name)

    def list_tasks(self) -> list[ScheduledTask]:
        return list(self._tasks.values())

    async def start(self) -> None:
        if self._running:
            return
        self._scheduler = AsyncIOScheduler(timezone="UTC")
        self._scheduler.start()
        self._running = True
        logger.info("Dramatiq scheduler started")

    async def stop(self) -> None:
        if not self._running:
            return
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
        self._tasks.clear()
        self._running = False
        logger.info("Dramatiq scheduler stopped")

    def get_stats(self) -> dict[str, Any]:
        return {
            "is_running": self._running,
            "task_count": len(self._tasks),
            "total_runs": sum(t.run_count for t in self._tasks.values()),
            "total_errors": sum(t.error_count for t in self._tasks.values()),
            "tasks": [t.to_dict() for t in self._tasks.values()],
        }


def _lookup_actor(actor_name: str) -> Any:
    from src.infrastructure.background import tasks

    return getattr(tasks, actor_name, None)


_scheduler: DramatiqScheduler | None = None


def get_scheduler() -> DramatiqScheduler:
    global _scheduler
    if _scheduler is None:
        _scheduler = DramatiqScheduler()
    return _scheduler


async def start_scheduler() -> DramatiqScheduler:
    """Start the scheduler and register the default periodic tasks."""
    worker = get_settings().worker
    scheduler = get_scheduler()
    if scheduler.is_running:
        return scheduler

    await scheduler.start()
    scheduler.add_interval_task(
        name="Process Pending Jobs",
        actor_name="process_pending_jobs_task",
        seconds=worker.poll_interval_seconds,
    )
    scheduler.add_cron_task(
        name="Cleanup Old Jobs",
        actor_name="cleanup_old_jobs_task",
        cron_expression=worker.cleanup_cron,
        kwargs={"older_than_days": worker.job_retention_days},
    )
    return scheduler


async def stop_scheduler() -> None:
    global _scheduler
    if _scheduler is not None:
        await _scheduler.stop()
        _scheduler = None
