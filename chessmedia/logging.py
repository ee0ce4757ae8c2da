"""
Centralized structlog configuration for the conversion service.

JSON lines in production, a readable console renderer in development.
Stdlib loggers (Django, Celery, botocore) are routed at the same level.
"""

from __future__ import annotations

import logging

import structlog


def _normalize_log_level(level: str | None) -> int:
    normalized = (level or "INFO").strip().upper()
    return logging._nameToLevel.get(normalized, logging.INFO)


def configure_logging(level: str | None = None, *, json_output: bool = True) -> None:
    resolved_level = _normalize_log_level(level)
    logging.basicConfig(level=resolved_level, format="%(message)s")

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(resolved_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
    )
