"""Structured logging for the request deduplication middleware.

Everything logs through structlog with dotted event names (``dedup.*``,
``alert.*``, ``cleanup.*``, ``telemetry.*``) and key-value context. While a
request is being deduplicated, :func:`request_context` binds the
idempotency key and endpoint into contextvars so every event emitted on
its behalf carries them without each call site repeating them.

Examples:
    At startup::

        configure_logging(level="INFO", json_output=True)

    Around a request::

        with request_context("a0eebc99-...", "/api/payments"):
            logger.info("dedup.cache_hit", hit_count=3)

    emits::

        {"event": "dedup.cache_hit", "hit_count": 3,
         "idempotency_key": "a0eebc99-...", "endpoint": "/api/payments",
         "level": "info", "timestamp": "2026-01-01T00:00:00.000000Z"}
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog

_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _resolve_level(level: str) -> int:
    name = level.upper()
    if name not in _LEVELS:
        raise ValueError(f"Unknown log level {level!r}, expected one of {', '.join(_LEVELS)}")
    return int(getattr(logging, name))


def configure_logging(level: str = "INFO", json_output: bool = True) -> None:
    """Install the structlog pipeline. Call once at application startup.

    Args:
        level: Minimum level name, case-insensitive
        json_output: JSON lines when True, coloured console output otherwise

    Raises:
        ValueError: If the level name is not a standard logging level
    """
    numeric_level = _resolve_level(level)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level)

    renderer: Any = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=True)
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


@contextmanager
def request_context(idempotency_key: str, endpoint: str) -> Iterator[None]:
    """Bind the key and endpoint to every log event inside the block."""
    with structlog.contextvars.bound_contextvars(
        idempotency_key=idempotency_key, endpoint=endpoint
    ):
        yield


def get_logger(name: str) -> Any:
    """Return a structlog logger named after the calling module."""
    return structlog.get_logger(name)
