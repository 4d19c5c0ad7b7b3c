"""structlog setup for the orchestrator and CLI."""

from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from collections.abc import Iterator

SERVICE_NAME = "whitelabel"

# Libraries that are chatty at INFO (one line per HTTP request or pool checkout)
_NOISY_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine", "alembic.runtime.migration")


def _add_service(
    _logger: object, _method: str, event_dict: structlog.types.EventDict
) -> structlog.types.EventDict:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def configure_logging(log_level: str = "INFO", log_format: str = "console") -> None:
    """Route structlog and stdlib logging to stderr through one renderer.

    Args:
        log_level: Minimum level name; unknown names fall back to INFO.
        log_format: "json" for one object per line, anything else renders for a terminal.
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if log_format == "json":
        processors.append(_add_service)
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[*processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(sys.stderr),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                *processors,
                renderer,
            ],
        )
    )
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


@contextmanager
def deployment_context(deployment_id: str, correlation_id: str) -> Iterator[None]:
    """Bind the deployment and correlation ids to every log line in this task."""
    structlog.contextvars.bind_contextvars(
        deployment_id=deployment_id, correlation_id=correlation_id
    )
    try:
        yield
    finally:
        structlog.contextvars.unbind_contextvars("deployment_id", "correlation_id")
