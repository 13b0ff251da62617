"""Structured logging configuration.

Call :func:`setup_logging` once at startup; modules log through
``structlog.get_logger(__name__)``.
"""

import logging
import sys

import structlog


def _stderr_logger(*args) -> structlog.PrintLogger:
    # Resolve sys.stderr per logger so redirected streams are honoured.
    return structlog.PrintLogger(sys.stderr)


def setup_logging(level: str | int = "WARNING", json_output: bool = False) -> None:
    """Configure structlog for the application.

    Args:
        level: Minimum level, as a name ("DEBUG") or number (10).
        json_output: Emit JSON lines instead of human-readable console logs.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.WARNING

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=_stderr_logger,
        cache_logger_on_first_use=False,
    )
