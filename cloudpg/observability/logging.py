"""
structlog setup for cloudpg.

Adapters log through ``structlog.get_logger(__name__)`` with the table,
index or session they touch as keyword fields. Production renders one JSON
object per line; every other environment gets the colored console renderer.
"""

import logging
import sys

import structlog
from structlog.types import Processor

from cloudpg.config.settings import get_settings
from cloudpg.observability.tracing import add_trace_context

# Libraries that are chatty at INFO
QUIET_LOGGERS = ("asyncpg", "asyncio", "opentelemetry")


def _shared_processors() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        add_trace_context,
    ]


def setup_logging(level: str | None = None, json_logs: bool | None = None) -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        level: overrides LOG_LEVEL (e.g. "DEBUG" from ``cloudpg --debug``)
        json_logs: force JSON (True) or console (False) rendering; by default
            JSON is used only when ENVIRONMENT=production
    """
    settings = get_settings()
    level = (level or settings.log_level).upper()
    if json_logs is None:
        json_logs = settings.is_production

    if json_logs:
        tail: list[Processor] = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        tail = [structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())]

    structlog.configure(
        processors=_shared_processors() + tail,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level, force=True)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_context(**kwargs) -> None:
    """Attach fields (e.g. ``session_id``) to every later log line in this context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
