"""Structured logging setup (structlog over stdlib logging)."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any

import structlog

LOG_FILE = Path("logs/terrabuild.log")


def configure_logging(level: str = "INFO", log_format: str = "json") -> None:
    """Configure structlog and the stdlib root logger.

    ``log_format`` is ``json`` for machine-readable output or ``text`` for the
    console renderer used in development.
    """
    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if log_format.lower() == "json":
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[*shared_processors, renderer],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if LOG_FILE.parent.exists():
        handlers.append(logging.FileHandler(LOG_FILE))

    logging.basicConfig(
        format="%(message)s",
        handlers=handlers,
        level=level.upper(),
        force=True,
    )
    # SQL echo is controlled by DB_ECHO, not the app log level
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
