"""A named cron task with an explicit start/stop lifecycle.

State machine: REGISTERED -> RUNNING -> STOPPED. ``start()`` adds a job to
the shared APScheduler instance; ``stop()`` removes it. A triggered run is
spawned as its own asyncio task so that stopping the scheduler cancels
future triggers without interrupting a run already in progress.
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone, tzinfo
from enum import Enum
from typing import Any

import structlog
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from fundmon.logging import get_logger

logger = get_logger(__name__)


class TaskState(str, Enum):
    REGISTERED = "registered"
    RUNNING = "running"
    STOPPED = "stopped"


class ScheduledTask:
    """One recurring pipeline stage.

    Args:
        name: Unique task name, also used as the APScheduler job id.
        cron: Five-field crontab expression.
        job: Coroutine function executed on every trigger.
        scheduler: Shared APScheduler instance.
        tz: Zone the crontab is evaluated in.

    Raises:
        ValueError: ``cron`` is not a valid crontab expression.
    """

    def __init__(
        self,
        name: str,
        cron: str,
        job: Callable[[], Awaitable[Any]],
        scheduler: AsyncIOScheduler,
        tz: tzinfo = timezone.utc,
    ) -> None:
        self.name = name
        self.cron = cron
        self._job = job
        self._scheduler = scheduler
        self._trigger = CronTrigger.from_crontab(cron, timezone=tz)
        self.state = TaskState.REGISTERED
        self.in_flight = False
        self.run_count = 0
        self.last_started_at: datetime | None = None
        self.last_finished_at: datetime | None = None
        self.last_error: str | None = None
        self._runs: set[asyncio.Task] = set()  # type: ignore[type-arg]

    def start(self) -> None:
        if self.state is TaskState.RUNNING:
            return
        self._scheduler.add_job(
            self._fire,
            self._trigger,
            id=self.name,
            name=self.name,
            replace_existing=True,
            coalesce=True,
            misfire_grace_time=300,
        )
        self.state = TaskState.RUNNING
        logger.info("task_scheduled", task=self.name, cron=self.cron)

    def stop(self) -> None:
        if self.state is TaskState.RUNNING:
            try:
                self._scheduler.remove_job(self.name)
            except JobLookupError:
                logger.debug("task_job_already_removed", task=self.name)
        self.state = TaskState.STOPPED
        logger.info("task_stopped", task=self.name, in_flight=self.in_flight)

    async def _fire(self) -> None:
        """APScheduler entry point: detach the run from the scheduler."""
        run = asyncio.create_task(self.run(), name=f"task-{self.name}")
        self._runs.add(run)
        run.add_done_callback(self._runs.discard)

    async def run(self) -> None:
        """Execute the job once. Failures are logged, never raised."""
        if self.in_flight:
            logger.warning("task_run_skipped_in_flight", task=self.name)
            return

        self.in_flight = True
        self.last_started_at = datetime.now(timezone.utc)
        self.run_count += 1
        structlog.contextvars.bind_contextvars(task=self.name)
        logger.info("task_run_started", run=self.run_count)
        try:
            await self._job()
        except asyncio.CancelledError:
            self.last_error = "cancelled"
            raise
        except Exception as exc:
            self.last_error = str(exc) or type(exc).__name__
            logger.error("task_run_failed", error=self.last_error, exc_info=True)
        else:
            self.last_error = None
            logger.info("task_run_finished")
        finally:
            self.in_flight = False
            self.last_finished_at = datetime.now(timezone.utc)
            structlog.contextvars.unbind_contextvars("task")

    async def wait(self, timeout: float | None = None) -> None:
        """Wait for detached runs still in progress."""
        if self._runs:
            await asyncio.wait(set(self._runs), timeout=timeout)

    def next_run_time(self) -> datetime | None:
        if self.state is not TaskState.RUNNING:
            return None
        job = self._scheduler.get_job(self.name)
        return getattr(job, "next_run_time", None)

    def status(self) -> dict:
        next_run = self.next_run_time()
        return {
            "cron": self.cron,
            "state": self.state.value,
            "in_flight": self.in_flight,
            "run_count": self.run_count,
            "last_started_at": self.last_started_at.isoformat() if self.last_started_at else None,
            "last_finished_at": self.last_finished_at.isoformat() if self.last_finished_at else None,
            "last_error": self.last_error,
            "next_run_at": next_run.isoformat() if next_run else None,
        }
