"""Structured logging configuration using structlog."""

import logging as stdlib_logging
import sys
from typing import Any

import structlog
from structlog.typing import EventDict, WrappedLogger

# Loggers that trace the HTTP exchange below the transport.
_WIRE_LOGGERS = ("urllib3", "requests")


def add_log_level(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Add the log level to the event dict."""
    if method_name == "warn":
        # Translate "warn" to "warning"
        event_dict["level"] = "warning"
    else:
        event_dict["level"] = method_name
    return event_dict


def configure_logging(
    level: str = "WARNING",
    json_output: bool = False,
) -> None:
    """Configure structlog for mwaction.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_output: If True, output JSON format. If False, use console-friendly format.
    """
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(stdlib_logging, level.upper(), stdlib_logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def enable_http_debug() -> None:
    """Route urllib3/requests debug records to stderr.

    These libraries log through the standard library, not structlog, so
    they get their own handler.
    """
    handler = stdlib_logging.StreamHandler(sys.stderr)
    handler.setFormatter(stdlib_logging.Formatter("%(name)s %(levelname)s %(message)s"))
    for name in _WIRE_LOGGERS:
        wire_logger = stdlib_logging.getLogger(name)
        wire_logger.setLevel(stdlib_logging.DEBUG)
        # Both libraries install a NullHandler at import time.
        if not any(type(h) is not stdlib_logging.NullHandler for h in wire_logger.handlers):
            wire_logger.addHandler(handler)


def bind_site(api_url: str) -> None:
    """Attach the site's API endpoint to every subsequent log event."""
    structlog.contextvars.bind_contextvars(site=api_url)


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """Get a configured logger instance.

    Args:
        name: Optional logger name. If not provided, uses the calling module's name.

    Returns:
        Configured structlog logger.
    """
    return structlog.get_logger(name)
