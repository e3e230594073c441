"""Structured logging setup.

All modules log through ``structlog.get_logger()`` with snake_case event
names and keyword fields. This module wires the processor chain once at
CLI startup:

- run ID injection from the correlation context
- per-item fields (file, channel, slot) from structlog contextvars
- JSON or console rendering on stderr

Usage:
    configure_logging(level="DEBUG", json_output=False)
"""

import logging
import sys
from typing import Any, List

import structlog
from structlog.typing import EventDict, WrappedLogger

from pretackler.observability.context import get_correlation_id

# Keys that must never reach a log sink, whatever a caller binds
REDACTED_KEYS = frozenset({"api_key", "authorization", "token", "secret"})


def add_correlation_id_processor(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Add the active run ID (or "none") to every entry."""
    corr_id = get_correlation_id()
    event_dict["run_id"] = corr_id if corr_id else "none"
    return event_dict


def redact_secrets_processor(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    for key in list(event_dict):
        if key.lower() in REDACTED_KEYS:
            event_dict[key] = "***"
    return event_dict


def configure_logging(
    level: str = "INFO",
    json_output: bool = False,
    add_timestamp: bool = True,
) -> None:
    """Configure structlog for the process.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR)
        json_output: Render JSON lines instead of the console format
        add_timestamp: Add an ISO timestamp to each entry
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    processors: List[Any] = [
        structlog.contextvars.merge_contextvars,
        add_correlation_id_processor,
        redact_secrets_processor,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if add_timestamp:
        processors.append(structlog.processors.TimeStamper(fmt="iso"))

    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )
