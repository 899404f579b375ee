"""structlog configuration for the fund monitor.

Events are snake_case names with key/value context, for example
``logger.info("category_fetched", category=1, count=42)``. Records from
libraries that log through stdlib (APScheduler, uvicorn, aiosqlite) go
through the same formatter, so one run produces one uniform stream.

Set LOG_FORMAT=json for one JSON object per line; anything else gives the
coloured console layout.
"""

import logging
import os
from decimal import Decimal

import structlog

# Third-party loggers that are noisy below WARNING during normal operation
_QUIET_LOGGERS = ("apscheduler", "aiosqlite", "uvicorn.access")


def _decimals_to_str(
    logger: logging.Logger, method_name: str, event_dict: dict
) -> dict:
    """Render Decimal values as plain numbers rather than ``Decimal('3.5')``."""
    for key, value in event_dict.items():
        if isinstance(value, Decimal):
            event_dict[key] = str(value)
    return event_dict


def _build_renderer(log_format: str) -> structlog.types.Processor:
    if log_format == "json":
        # Fund names are Chinese; keep them readable in the output
        return structlog.processors.JSONRenderer(ensure_ascii=False)
    return structlog.dev.ConsoleRenderer()


def setup_logging(log_level: str = "INFO", log_format: str | None = None) -> None:
    """Install a single root handler shared by structlog and stdlib loggers.

    ``log_format`` overrides the LOG_FORMAT environment variable. Context
    bound via ``structlog.contextvars`` (the scheduler binds ``task``) is
    added to every event logged from the same asyncio task.
    """
    log_format = (log_format or os.environ.get("LOG_FORMAT", "console")).lower()

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _decimals_to_str,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            _build_renderer(log_format),
        ],
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
