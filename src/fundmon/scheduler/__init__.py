"""Cron-driven task registry for the ingestion, cleanup and alert-sweep stages."""

from fundmon.scheduler.scheduler import PipelineScheduler
from fundmon.scheduler.tasks import ScheduledTask, TaskState

__all__ = [
    "PipelineScheduler",
    "ScheduledTask",
    "TaskState",
]
