"""Observability for batch runs.

Provides:
- Run ID context propagated into every log entry
- structlog configuration (console or JSON)
- Prometheus metrics on a private registry

Usage:
    from pretackler.observability import configure_logging, correlation_id_context

    configure_logging(level="INFO")
    with correlation_id_context() as run_id:
        ...
"""

from pretackler.observability.context import (
    correlation_id_context,
    get_correlation_id,
)
from pretackler.observability.logging import (
    add_correlation_id_processor,
    configure_logging,
)
from pretackler.observability.metrics import (
    ATTEMPTS_TOTAL,
    BYTES_SENT,
    CHANNEL_WORKERS,
    ITEM_DURATION,
    ITEMS_PROCESSED,
    QUEUE_DEPTH,
    RATE_LIMIT_WAIT,
    ROUTE_DECISIONS,
    get_metrics_text,
    write_metrics_file,
)

__all__ = [
    # Context
    "get_correlation_id",
    "correlation_id_context",
    # Logging
    "configure_logging",
    "add_correlation_id_processor",
    # Metrics
    "ITEMS_PROCESSED",
    "ATTEMPTS_TOTAL",
    "ROUTE_DECISIONS",
    "BYTES_SENT",
    "CHANNEL_WORKERS",
    "QUEUE_DEPTH",
    "ITEM_DURATION",
    "RATE_LIMIT_WAIT",
    "get_metrics_text",
    "write_metrics_file",
]
