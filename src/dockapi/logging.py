"""Structured logging configuration for dockapi.

This module provides a centralized logging setup using structlog with support
for both development (colored console output) and production (JSON) modes.
"""

import logging
import sys
from typing import Any, Dict, Mapping, Optional

import structlog
from structlog.types import EventDict, Processor

# Header names whose values must never reach a log sink.
SENSITIVE_HEADERS = {"x-registry-auth", "x-registry-config", "authorization"}


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add application context to log events."""
    from dockapi import __version__

    event_dict["app"] = "dockapi"
    event_dict["version"] = __version__
    return event_dict


def configure_logging(
    log_level: str = "INFO",
    log_format: str = "console",
    log_file: Optional[str] = None,
) -> None:
    """Configure structured logging for dockapi.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_format: Output format - "console" for colored development output,
                   "json" for structured production logging.
        log_file: Optional file path to write logs to. If None, logs to stdout.
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    if log_file:
        logging.basicConfig(
            format="%(message)s",
            level=numeric_level,
            filename=log_file,
        )
    else:
        logging.basicConfig(
            format="%(message)s",
            level=numeric_level,
            stream=sys.stdout,
        )

    # Silence noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_app_context,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if log_format == "json":
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.processors.ExceptionRenderer(),
            structlog.dev.ConsoleRenderer(
                colors=log_file is None,
                exception_formatter=structlog.dev.plain_traceback,
            ),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str, **initial_context: Any) -> structlog.stdlib.BoundLogger:
    """Get a logger instance with optional initial context.

    Args:
        name: Logger name, typically __name__ of the calling module.
        **initial_context: Additional context to bind to all log messages.

    Returns:
        A configured structlog logger instance.

    Example:
        >>> logger = get_logger(__name__, component="connection")
        >>> logger.info("request_sent", method="GET", path="/info")
    """
    logger = structlog.get_logger(name)
    if initial_context:
        logger = logger.bind(**initial_context)
    return logger


def bind_context(**context: Any) -> None:
    """Bind context to the current thread's logger.

    Args:
        **context: Key-value pairs to add to the logging context.

    Example:
        >>> bind_context(container_id="4fa6e0f0c678")
    """
    structlog.contextvars.bind_contextvars(**context)


def unbind_context(*keys: str) -> None:
    """Remove keys from the current thread's logging context."""
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    """Clear all context from the current thread."""
    structlog.contextvars.clear_contextvars()


def redact_headers(headers: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Return a copy of ``headers`` safe for logging.

    Registry credentials travel base64 encoded in headers, so their values
    are replaced rather than pattern-matched.
    """
    if not headers:
        return {}
    return {
        key: "[REDACTED]" if key.lower() in SENSITIVE_HEADERS else value
        for key, value in headers.items()
    }
