"""Registry of the recurring pipeline tasks.

PipelineScheduler owns one APScheduler AsyncIOScheduler and a name-keyed
map of ScheduledTask objects:

    ingest-morning    full ingestion (default 10:00)
    ingest-afternoon  full ingestion (default 15:00)
    cleanup           retention purge (default 23:00)
    alert-sweep       re-alert on stored breaches (default hourly)

``start()`` must be called from inside a running event loop. ``stop()``
is idempotent and leaves runs already in progress to finish on their own.
"""

from collections.abc import Awaitable, Callable
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from fundmon.config import ScheduleSettings, resolve_timezone
from fundmon.logging import get_logger
from fundmon.pipeline import FundPipeline
from fundmon.scheduler.tasks import ScheduledTask

logger = get_logger(__name__)


class PipelineScheduler:
    """Starts, stops and reports on the four pipeline tasks."""

    def __init__(self, pipeline: FundPipeline, settings: ScheduleSettings) -> None:
        self._pipeline = pipeline
        self._settings = settings
        self._tz = resolve_timezone(settings.timezone)
        self._scheduler: AsyncIOScheduler | None = None
        self._tasks: dict[str, ScheduledTask] = {}

    @property
    def tasks(self) -> dict[str, ScheduledTask]:
        return dict(self._tasks)

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None

    def _definitions(self) -> list[tuple[str, str, Callable[[], Awaitable[Any]]]]:
        pipeline = self._pipeline
        return [
            (
                "ingest-morning",
                self._settings.ingest_morning,
                lambda: pipeline.run_ingestion("ingest-morning"),
            ),
            (
                "ingest-afternoon",
                self._settings.ingest_afternoon,
                lambda: pipeline.run_ingestion("ingest-afternoon"),
            ),
            ("cleanup", self._settings.cleanup, pipeline.run_cleanup),
            ("alert-sweep", self._settings.alert_sweep, pipeline.run_alert_sweep),
        ]

    def start(self) -> None:
        """Register and activate every task."""
        if self._scheduler is not None:
            logger.warning("scheduler_already_started")
            return

        self._scheduler = AsyncIOScheduler(timezone=self._tz)
        for name, cron, job in self._definitions():
            try:
                task = ScheduledTask(name, cron, job, self._scheduler, tz=self._tz)
            except ValueError as exc:
                logger.error("task_schedule_invalid", task=name, cron=cron, error=str(exc))
                continue
            self._tasks[name] = task

        self._scheduler.start()
        for task in self._tasks.values():
            task.start()

        logger.info("scheduler_started", tasks=list(self._tasks), timezone=str(self._tz))

    def stop(self) -> None:
        """Deactivate every task and clear the registry. Safe to call twice."""
        if self._scheduler is None:
            return

        for task in self._tasks.values():
            task.stop()
        self._tasks.clear()

        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("scheduler_stopped")

    async def run_now(self, name: str) -> None:
        """Run one registered task immediately on the calling task.

        Raises:
            KeyError: no task with that name is registered.
        """
        task = self._tasks[name]
        await task.run()

    def get_task_status(self) -> dict[str, dict]:
        return {name: task.status() for name, task in self._tasks.items()}
