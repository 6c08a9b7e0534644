# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the periodic task scheduler."""

from unittest.mock import MagicMock

import pytest

from src.infrastructure.background.scheduler import DramatiqScheduler


@pytest.fixture
def actor() -> MagicMock:
    return MagicMock()


@pytest.fixture
def scheduler(actor: MagicMock) -> DramatiqScheduler:
    actors = {"process_pending_jobs_task": actor}
    return DramatiqScheduler(actor_lookup=actors.get)


@pytest.mark.unit
class TestDramatiqScheduler:
    """Tests for task registration and execution."""

    def test_interval_must_be_positive(self, scheduler: DramatiqScheduler) -> None:
        """A zero interval is rejected."""
        with pytest.raises(ValueError, match="Interval must be positive"):
            scheduler.add_interval_task("Sweep", "process_pending_jobs_task")

    def test_invalid_cron_rejected(self, scheduler: DramatiqScheduler) -> None:
        """A malformed crontab raises ValueError."""
        with pytest.raises(ValueError):
            scheduler.add_cron_task("Cleanup", "cleanup_old_jobs_task", "every day")

    @pytest.mark.asyncio
    async def test_execute_sends_actor(self, scheduler: DramatiqScheduler, actor: MagicMock) -> None:
        """Running a task sends its actor with the stored arguments."""
        task = scheduler.add_interval_task(
            "Sweep", "process_pending_jobs_task", seconds=10, kwargs={"batch_size": 3}
        )

        await scheduler._execute_task(task.id)

        actor.send.assert_called_once_with(batch_size=3)
        assert task.run_count == 1
        assert task.last_run is not None

    @pytest.mark.asyncio
    async def test_missing_actor_counts_error(self, scheduler: DramatiqScheduler) -> None:
        """An unknown actor is counted as an error, not raised."""
        task = scheduler.add_cron_task("Cleanup", "cleanup_old_jobs_task", "0 3 * * *")

        await scheduler._execute_task(task.id)

        assert task.error_count == 1
        assert task.run_count == 0

    @pytest.mark.asyncio
    async def test_send_failure_counts_error(
        self, scheduler: DramatiqScheduler, actor: MagicMock
    ) -> None:
        """A broker failure while sending is counted."""
        actor.send.side_effect = ConnectionError("broker down")
        task = scheduler.add_interval_task("Sweep", "process_pending_jobs_task", minutes=1)

        await scheduler._execute_task(task.id)

        stats = scheduler.get_stats()
        assert stats["total_errors"] == 1
        assert stats["total_runs"] == 0
        assert stats["tasks"][0]["name"] == "Sweep"

    @pytest.mark.asyncio
    async def test_unknown_task_id_is_ignored(self, scheduler: DramatiqScheduler, actor) -> None:
        """A stale task id does nothing."""
        await scheduler._execute_task("missing")

        actor.send.assert_not_called()

    @pytest.mark.asyncio
    async def test_start_and_stop(self, scheduler: DramatiqScheduler) -> None:
        """Stopping clears registered tasks."""
        await scheduler.start()
        scheduler.add_interval_task("Sweep", "process_pending_jobs_task", seconds=10)

        assert scheduler.is_running
        assert scheduler.get_stats()["task_count"] == 1

        await scheduler.stop()

        assert not scheduler.is_running
        assert scheduler.list_tasks() == []
