# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Scheduler for periodic refresh tier messages.

APScheduler interval jobs, one per configured tier, each sending a
``refresh_tier_metrics`` message on the tier's interval. Jobs never overlap
with themselves and missed runs are coalesced into one.

Example:
    from cohortlens.infrastructure.background.scheduler import start_scheduler

    scheduler = await start_scheduler()
    ...
    await stop_scheduler()
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable
from uuid import uuid4

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from cohortlens.domains.metrics.tiers import TierAssignment, load_tier_assignment
from cohortlens.utils.datetime import utc_now

logger = logging.getLogger(__name__)

REFRESH_ACTOR = "refresh_tier_metrics"


@dataclass
class ScheduledTask:
    """Configuration for a scheduled Dramatiq message.

    Attributes:
        id: Unique task identifier.
        name: Human-readable task name.
        actor_name: Name of the Dramatiq actor to send to.
        args: Positional arguments for the actor.
        kwargs: Keyword arguments for the actor.
        interval_minutes: Minutes between runs.
        enabled: Whether the task is enabled.
        last_run: Last time a message was sent.
        run_count: Messages sent.
        error_count: Failed sends.
    """

    name: str
    actor_name: str
    interval_minutes: int
    args: tuple = field(default_factory=tuple)
    kwargs: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid4()))
    enabled: bool = True
    last_run: datetime | None = None
    run_count: int = 0
    error_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "name": self.name,
            "actor_name": self.actor_name,
            "interval_minutes": self.interval_minutes,
            "enabled": self.enabled,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "run_count": self.run_count,
            "error_count": self.error_count,
        }


class DramatiqScheduler:
    """Sends Dramatiq messages on fixed intervals.

    Attributes:
        _scheduler: APScheduler instance, created on start().
        _tasks: Scheduled tasks by id.
        _running: Whether the scheduler is running.
    """

    def __init__(self, actor_resolver: Callable[[str], Any] | None = None) -> None:
        """Initialize the scheduler.

        Args:
            actor_resolver: Maps an actor name to an object with ``send``.
                Defaults to a lookup in the tasks package.
        """
        self._scheduler: AsyncIOScheduler | None = None
        self._tasks: dict[str, ScheduledTask] = {}
        self._running = False
        self._actor_resolver = actor_resolver or _resolve_actor

    @property
    def is_running(self) -> bool:
        return self._running

    def add_interval_task(
        self,
        name: str,
        actor_name: str,
        minutes: int,
        args: tuple = (),
        kwargs: dict[str, Any] | None = None,
        enabled: bool = True,
        start_immediately: bool = False,
    ) -> ScheduledTask:
        """Add an interval-scheduled task.

        The job is registered with APScheduler only when the scheduler is
        running.

        Args:
            name: Task name.
            actor_name: Dramatiq actor to send to.
            minutes: Interval in minutes.
            args: Actor arguments.
            kwargs: Actor keyword arguments.
            enabled: Whether the task is enabled.
            start_immediately: Send the first message right away.

        Returns:
            Created ScheduledTask.

        Raises:
            ValueError: If the interval is not positive.
        """
        if minutes <= 0:
            raise ValueError(f"Interval must be positive, got {minutes} minutes")

        task = ScheduledTask(
            name=name,
            actor_name=actor_name,
            interval_minutes=minutes,
            args=args,
            kwargs=kwargs or {},
            enabled=enabled,
        )
        self._tasks[task.id] = task

        if self._scheduler and enabled:
            self._scheduler.add_job(
                self._execute_task,
                trigger=IntervalTrigger(minutes=minutes),
                args=[task.id],
                id=task.id,
                name=name,
                max_instances=1,
                coalesce=True,
                next_run_time=utc_now() if start_immediately else None,
            )

        logger.info("Added interval task: %s (every %dm)", name, minutes)
        return task

    def add_tier_tasks(self, tiers: TierAssignment) -> list[ScheduledTask]:
        """Add one refresh task per configured tier."""
        return [
            self.add_interval_task(
                name=f"Refresh {tier.name} metrics",
                actor_name=REFRESH_ACTOR,
                minutes=tier.interval_minutes,
                args=(tier.name,),
            )
            for tier in tiers.tiers.values()
        ]

    async def _execute_task(self, task_id: str) -> None:
        """Send the task's message.

        A failed send is logged and counted; the job stays scheduled.
        """
        task = self._tasks.get(task_id)
        if not task or not task.enabled:
            return

        try:
            actor = self._actor_resolver(task.actor_name)
            if actor is None:
                raise ValueError(f"Actor not found: {task.actor_name}")
            actor.send(*task.args, **task.kwargs)
            task.last_run = utc_now()
            task.run_count += 1
            logger.debug("Scheduled task %s sent to queue", task.name)
        except Exception as e:
            task.error_count += 1
            logger.error("Scheduled task %s failed: %s", task.name, e, exc_info=True)

    def remove_task(self, task_id: str) -> bool:
        """Remove a scheduled task.

        Returns:
            True if the task existed.
        """
        if task_id not in self._tasks:
            return False

        if self._scheduler:
            try:
                self._scheduler.remove_job(task_id)
            except JobLookupError:
                logger.debug("Job %s was not registered with APScheduler", task_id)

        del self._tasks[task_id]
        logger.info("Removed scheduled task: %s", task_id)
        return True

    def get_task(self, task_id: str) -> ScheduledTask | None:
        return self._tasks.get(task_id)

    def list_tasks(self) -> list[ScheduledTask]:
        return list(self._tasks.values())

    async def start(self) -> None:
        """Start the scheduler."""
        if self._running:
            return

        self._scheduler = AsyncIOScheduler(timezone="UTC")
        self._scheduler.start()
        self._running = True
        logger.info("Dramatiq scheduler started")

    async def stop(self) -> None:
        """Stop the scheduler."""
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None

        self._running = False
        logger.info("Dramatiq scheduler stopped")

    def get_stats(self) -> dict[str, Any]:
        """Get scheduler statistics."""
        return {
            "is_running": self._running,
            "task_count": len(self._tasks),
            "enabled_count": sum(1 for t in self._tasks.values() if t.enabled),
            "total_runs": sum(t.run_count for t in self._tasks.values()),
            "total_errors": sum(t.error_count for t in self._tasks.values()),
            "tasks": [t.to_dict() for t in self._tasks.values()],
        }


def _resolve_actor(actor_name: str) -> Any:
    from cohortlens.infrastructure.background import tasks

    return getattr(tasks, actor_name, None)


_scheduler: DramatiqScheduler | None = None


def get_scheduler() -> DramatiqScheduler:
    """Get the singleton scheduler instance."""
    global _scheduler
    if _scheduler is None:
        _scheduler = DramatiqScheduler()
    return _scheduler


async def start_scheduler(tiers: TierAssignment | None = None) -> DramatiqScheduler:
    """Start the scheduler and register one job per refresh tier.

    Args:
        tiers: Tier assignment; loaded from the configured file when omitted.

    Returns:
        Started scheduler instance.
    """
    from cohortlens.core.config import get_settings

    settings = get_settings()
    scheduler = get_scheduler()
    await scheduler.start()

    if not settings.refresh.scheduler_enabled:
        logger.info("Refresh scheduling disabled; no jobs registered")
        return scheduler

    if tiers is None:
        tiers = load_tier_assignment(settings.refresh.tiers_path)
    scheduler.add_tier_tasks(tiers)
    logger.info("Registered %d refresh tier jobs", len(scheduler.list_tasks()))
    return scheduler


async def stop_scheduler() -> None:
    """Stop the scheduler."""
    global _scheduler
    if _scheduler is not None:
        await _scheduler.stop()
        _scheduler = None
