"""Logging configuration for the marketplace checkout context.

Checkout attempts bind ``attempt_id`` and ``buyer_pubkey`` through
``log_context`` so every record logged while an attempt runs (invoice
generation, publishing, confirmation) can be correlated. Output is JSON in
production and staging, a console rendering elsewhere; ``MARKETPLACE_LOG_FORMAT``
forces either.
"""

import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog

LEVELS_BY_ENVIRONMENT = {
    "production": "INFO",
    "staging": "INFO",
    "development": "DEBUG",
    "test": "WARNING",
}

QUIET_LOGGERS = ("asyncio", "protean")


def get_environment() -> str:
    return (os.getenv("ENV") or os.getenv("ENVIRONMENT") or os.getenv("PROTEAN_ENV") or "development").lower()


def get_log_level() -> str:
    """Get log level based on environment."""
    return os.getenv("LOG_LEVEL", LEVELS_BY_ENVIRONMENT.get(get_environment(), "INFO")).upper()


def get_log_format() -> str:
    """``json`` or ``console``."""
    configured = os.getenv("MARKETPLACE_LOG_FORMAT", "").lower()
    if configured:
        if configured not in ("json", "console"):
            raise ValueError(f"Unknown MARKETPLACE_LOG_FORMAT: {configured}")
        return configured
    return "json" if get_environment() in ("production", "staging") else "console"


def setup_stdlib_logging() -> None:
    """Route standard library logging to stdout at the configured level."""
    log_level = get_log_level()

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = []

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    root_logger.addHandler(console_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def setup_structlog() -> None:
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if get_log_format() == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def configure_logging() -> None:
    """Configure all logging for the application."""
    setup_stdlib_logging()
    setup_structlog()


def add_context(**kwargs: Any) -> None:
    """Add context variables that will be included in all subsequent log messages."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all context variables."""
    structlog.contextvars.clear_contextvars()


@contextmanager
def log_context(**kwargs: Any) -> Iterator[None]:
    """Bind context variables for the duration of the block, then restore the previous ones."""
    with structlog.contextvars.bound_contextvars(**kwargs):
        yield
