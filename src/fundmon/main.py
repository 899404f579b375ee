"""Entry point for the fund premium/discount monitor.

Wires all components together, optionally embeds the FastAPI query API,
and starts the pipeline scheduler. When the API is enabled (default), the
scheduler and the API share a single asyncio event loop via uvicorn's
programmatic API and FastAPI's lifespan context manager.

SIGINT/SIGTERM trigger one graceful shutdown; repeated signals while
shutting down are ignored.

Component wiring order (in _build_components):
1. FundDatabase (SQLite connection)
2. FundFetcher (upstream HTTP client)
3. FundRecordStore (batched idempotent persistence)
4. Notification channels and AlertDispatcher
5. FundPipeline (fetch -> store -> evaluate -> dispatch)
6. PipelineScheduler (cron tasks)
"""

import asyncio
import signal
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import FastAPI

from fundmon.alerts.dispatcher import AlertDispatcher
from fundmon.config import AppSettings
from fundmon.crawler.fetcher import FundFetcher
from fundmon.data.database import FundDatabase
from fundmon.data.store import FundRecordStore
from fundmon.logging import get_logger, setup_logging
from fundmon.notifiers.factory import build_channels
from fundmon.pipeline import FundPipeline
from fundmon.scheduler.scheduler import PipelineScheduler

SHUTDOWN_WAIT_SECONDS = 30.0


def _build_components(settings: AppSettings) -> dict[str, Any]:
    """Build all components from settings.

    Note: Does NOT open the database -- that happens in ``Application.start``.
    """
    database = FundDatabase(settings.storage.db_path)
    fetcher = FundFetcher(settings.upstream)
    store = FundRecordStore(
        database,
        batch_size=settings.storage.batch_size,
        progress_every=settings.storage.progress_every,
    )
    dispatcher = AlertDispatcher(
        build_channels(settings),
        max_concurrency=settings.alerts.max_concurrent_channels,
    )
    pipeline = FundPipeline(
        fetcher,
        store,
        dispatcher,
        settings.alerts,
        settings.storage,
        naive_timezone=settings.upstream.naive_timezone,
    )
    scheduler = PipelineScheduler(pipeline, settings.schedule)

    return {
        "database": database,
        "fetcher": fetcher,
        "store": store,
        "dispatcher": dispatcher,
        "pipeline": pipeline,
        "scheduler": scheduler,
    }


class Application:
    """Start/stop lifecycle shared by the API and headless modes."""

    def __init__(self, settings: AppSettings, components: dict[str, Any]) -> None:
        self.settings = settings
        self.components = components
        self.is_shutting_down = False
        self._logger = get_logger("fundmon.main")

    async def start(self) -> None:
        await self.components["database"].connect()

        if self.settings.schedule.enabled:
            self.components["scheduler"].start()
        else:
            self._logger.info("scheduler_disabled")

        await self.components["dispatcher"].send_system_alert(
            "started", "Fund premium monitor started."
        )
        self._logger.info("fund_monitor_started")

    async def shutdown(self, reason: str = "shutdown") -> None:
        """Stop scheduling, let running tasks finish, then release resources."""
        if self.is_shutting_down:
            self._logger.warning("shutdown_already_in_progress", reason=reason)
            return
        self.is_shutting_down = True
        self._logger.info("graceful_shutdown_started", reason=reason)

        scheduler: PipelineScheduler = self.components["scheduler"]
        tasks = scheduler.tasks
        scheduler.stop()
        for task in tasks.values():
            await task.wait(timeout=SHUTDOWN_WAIT_SECONDS)

        dispatcher: AlertDispatcher = self.components["dispatcher"]
        try:
            await dispatcher.send_system_alert("stopped", "Fund premium monitor stopped.")
        finally:
            await self.components["fetcher"].close()
            await dispatcher.close()
            await self.components["database"].close()

        self._logger.info("fund_monitor_stopped")


def _setup_signal_handlers(stop_event: asyncio.Event) -> None:
    """Register SIGINT/SIGTERM to request a graceful stop.

    Must be called after the asyncio event loop is running.
    """
    logger = get_logger("fundmon.main")
    loop = asyncio.get_running_loop()

    def _graceful_handler() -> None:
        logger.info("graceful_shutdown_signal")
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _graceful_handler)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage component lifecycle within the FastAPI application.

    uvicorn owns SIGINT/SIGTERM in this mode and runs the shutdown half of
    the lifespan when it exits.
    """
    application: Application = app.state.application
    components = application.components

    # Store components on app.state for route handler access
    app.state.store = components["store"]
    app.state.pipeline = components["pipeline"]
    app.state.scheduler = components["scheduler"]
    app.state.dispatcher = components["dispatcher"]
    app.state.fetcher = components["fetcher"]

    await application.start()
    try:
        yield
    finally:
        await application.shutdown("api_stopped")


async def run() -> None:
    """Run the monitor.

    When the API is enabled (API_ENABLED=true, the default) it is served by
    uvicorn and the lifespan manages startup/shutdown. Otherwise the
    scheduler runs until SIGINT/SIGTERM.
    """
    settings = AppSettings()

    setup_logging(settings.log_level)
    logger = get_logger("fundmon.main")

    components = _build_components(settings)
    application = Application(settings, components)

    if settings.api.enabled:
        from fundmon.api.app import create_api_app

        app = create_api_app(lifespan=lifespan)
        app.state.settings = settings
        app.state.application = application

        logger.info(
            "starting_with_api",
            host=settings.api.host,
            port=settings.api.port,
        )

        config = uvicorn.Config(
            app,
            host=settings.api.host,
            port=settings.api.port,
            log_level="warning",  # Suppress uvicorn access logs
        )
        server = uvicorn.Server(config)
        await server.serve()
    else:
        stop_event = asyncio.Event()
        _setup_signal_handlers(stop_event)

        logger.info(
            "starting_without_api",
            schedule_enabled=settings.schedule.enabled,
            db_path=settings.storage.db_path,
        )

        await application.start()
        try:
            await stop_event.wait()
        finally:
            await application.shutdown("signal")


def main() -> None:
    """Synchronous entry point."""
    asyncio.run(run())


if __name__ == "__main__":
    main()
