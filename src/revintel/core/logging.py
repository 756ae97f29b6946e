"""Structured logging setup for the analysis CLI and embedding callers.

Log lines go to stderr so that JSON written to stdout by the CLI stays
machine-readable. Production renders JSON lines, everything else the
structlog console renderer.
"""

from __future__ import annotations

import logging
import sys

import structlog

from src.revintel.config import Environment, get_settings


def configure_structlog(level: str | None = None, json_logs: bool | None = None) -> None:
    """Configure structlog over the stdlib root logger.

    Args:
        level: Overrides ``settings.LOG_LEVEL``.
        json_logs: Overrides the environment-based renderer choice.
    """
    settings = get_settings()
    level = (level or settings.LOG_LEVEL).upper()
    if json_logs is None:
        json_logs = settings.ENVIRONMENT == Environment.production

    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level, force=True)

    processors: list = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer(),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
