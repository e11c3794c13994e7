# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the refresh tier scheduler."""

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from cohortlens.domains.metrics.tiers import load_tier_assignment
from cohortlens.infrastructure.background.scheduler import (
    REFRESH_ACTOR,
    DramatiqScheduler,
)

SHIPPED_TIERS = Path(__file__).resolve().parents[2] / "config" / "refresh_tiers.yaml"


@pytest.fixture
def actor() -> MagicMock:
    """Stand-in actor recording sent messages."""
    return MagicMock()


@pytest.fixture
def scheduler(actor: MagicMock) -> DramatiqScheduler:
    """Scheduler resolving every actor name to the stand-in."""
    return DramatiqScheduler(actor_resolver=lambda name: actor)


class TestAddTasks:
    """Tests for task registration."""

    def test_interval_must_be_positive(self, scheduler: DramatiqScheduler) -> None:
        """Test that a zero interval is rejected."""
        with pytest.raises(ValueError):
            scheduler.add_interval_task("bad", REFRESH_ACTOR, minutes=0)

    def test_one_task_per_tier(self, scheduler: DramatiqScheduler) -> None:
        """Test tier tasks and their intervals."""
        tasks = scheduler.add_tier_tasks(load_tier_assignment(SHIPPED_TIERS))

        assert [(t.args, t.interval_minutes) for t in tasks] == [
            (("light",), 15),
            (("medium",), 60),
            (("heavy",), 360),
        ]
        assert all(t.actor_name == REFRESH_ACTOR for t in tasks)

    def test_remove_task(self, scheduler: DramatiqScheduler) -> None:
        """Test removing known and unknown tasks."""
        task = scheduler.add_interval_task("light", REFRESH_ACTOR, minutes=15)

        assert scheduler.remove_task(task.id) is True
        assert scheduler.remove_task(task.id) is False
        assert scheduler.get_task(task.id) is None


class TestExecuteTask:
    """Tests for sending scheduled messages."""

    @pytest.mark.asyncio
    async def test_sends_message_with_args(
        self, scheduler: DramatiqScheduler, actor: MagicMock
    ) -> None:
        """Test that the tier name is sent to the actor."""
        task = scheduler.add_interval_task(
            "medium", REFRESH_ACTOR, minutes=60, args=("medium",)
        )

        await scheduler._execute_task(task.id)

        actor.send.assert_called_once_with("medium")
        assert task.run_count == 1
        assert task.last_run is not None

    @pytest.mark.asyncio
    async def test_send_failure_is_counted(
        self, scheduler: DramatiqScheduler, actor: MagicMock
    ) -> None:
        """Test that a broker error is counted and not raised."""
        actor.send.side_effect = ConnectionError("redis down")
        task = scheduler.add_interval_task("light", REFRESH_ACTOR, minutes=15, args=("light",))

        await scheduler._execute_task(task.id)

        assert task.error_count == 1
        assert task.run_count == 0
        assert scheduler.get_stats()["total_errors"] == 1

    @pytest.mark.asyncio
    async def test_unknown_actor_is_counted(self) -> None:
        """Test that an unresolvable actor counts as an error."""
        scheduler = DramatiqScheduler(actor_resolver=lambda name: None)
        task = scheduler.add_interval_task("light", "missing_actor", minutes=15)

        await scheduler._execute_task(task.id)

        assert task.error_count == 1

    @pytest.mark.asyncio
    async def test_disabled_task_is_skipped(
        self, scheduler: DramatiqScheduler, actor: MagicMock
    ) -> None:
        """Test that disabled tasks send nothing."""
        task = scheduler.add_interval_task("light", REFRESH_ACTOR, minutes=15, enabled=False)

        await scheduler._execute_task(task.id)

        actor.send.assert_not_called()


class TestLifecycle:
    """Tests for starting and stopping."""

    @pytest.mark.asyncio
    async def test_jobs_never_overlap(self, scheduler: DramatiqScheduler) -> None:
        """Test that registered jobs run one at a time and coalesce."""
        await scheduler.start()
        try:
            task = scheduler.add_interval_task("light", REFRESH_ACTOR, minutes=15)
            job = scheduler._scheduler.get_job(task.id)

            assert job.max_instances == 1
            assert job.coalesce is True
            assert scheduler.get_stats()["is_running"] is True
        finally:
            await scheduler.stop()

        assert scheduler.is_running is False
