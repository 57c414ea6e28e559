# Structured logging: structlog events rendered as JSON through stdlib logging

import logging
import os
import sys
from typing import Optional, TextIO

import structlog


def setup_logging(log_level: str = "INFO", stream: Optional[TextIO] = None) -> None:
    """
    Configure structlog to emit one JSON object per log record.

    Context bound with ``structlog.contextvars.bind_contextvars`` (a request
    or document id, say) is merged into every event.

    Args:
        log_level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        stream: Output stream. Defaults to stdout, or stderr when
            CONTEXT_LOG_STDERR is set.

    Raises:
        ValueError: If log_level is not a known level name
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {log_level}")

    if stream is None:
        stream = sys.stderr if os.environ.get("CONTEXT_LOG_STDERR") else sys.stdout
    logging.basicConfig(format="%(message)s", stream=stream, level=level, force=True)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """Structured logger for ``name`` (typically __name__)."""
    return structlog.get_logger(name)
