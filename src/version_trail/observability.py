"""Structured logging helpers.

All modules obtain their logger through :func:`get_logger` and log a constant
event string with keyword context, e.g.::

    logger.info("Recorded version", item_type="Widget", item_id=1, lifecycle_event="update")
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog


def configure_logging(
    level: str = "INFO", json_logs: bool = False, cache: bool = True
) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        level: Minimum log level name.
        json_logs: Render JSON lines instead of the console renderer.
        cache: Cache each logger on first use. Turn off when the
            configuration is replaced later in the same process.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)

    renderer: Any = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        cache_logger_on_first_use=cache,
    )


def get_logger(name: str) -> Any:
    """Return a structlog logger bound to the given module name.

    Args:
        name: Usually ``__name__`` of the calling module.

    Returns:
        A structlog bound logger.
    """
    return structlog.get_logger(name)
