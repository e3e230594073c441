"""Prometheus metrics definitions for the PreTackler batch pipeline.

Defines counters, gauges, and histograms for monitoring:
- Item throughput and outcome per channel
- Attempt outcomes and routing decisions
- Worker allocation and queue depth per channel
- Rate limiter waits and item latency

Usage:
    from pretackler.observability.metrics import ITEMS_PROCESSED, QUEUE_DEPTH

    ITEMS_PROCESSED.labels(channel="long", status="succeeded").inc()
    QUEUE_DEPTH.labels(channel="normal").set(12)

Metrics can be dumped at the end of a run with write_metrics_file().
"""

from pathlib import Path
from typing import Union

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
    write_to_textfile,
)

# Private registry so tests and repeated runs in one process stay isolated
REGISTRY = CollectorRegistry(auto_describe=True)

# =============================================================================
# COUNTERS
# =============================================================================

ITEMS_PROCESSED = Counter(
    name="pretackler_items_processed_total",
    documentation="Items that reached a terminal outcome",
    labelnames=["channel", "status"],  # normal/long, succeeded/failed/skipped
    registry=REGISTRY,
)

ATTEMPTS_TOTAL = Counter(
    name="pretackler_attempts_total",
    documentation="Request attempts by outcome",
    labelnames=["channel", "outcome"],  # success, retryable, fatal
    registry=REGISTRY,
)

ROUTE_DECISIONS = Counter(
    name="pretackler_route_decisions_total",
    documentation="Routing decisions by channel and matched threshold",
    labelnames=["channel", "threshold"],  # none, bytes, lines, bytes+lines
    registry=REGISTRY,
)

BYTES_SENT = Counter(
    name="pretackler_request_bytes_total",
    documentation="Request payload bytes sent",
    labelnames=["channel"],
    registry=REGISTRY,
)

# =============================================================================
# GAUGES
# =============================================================================

CHANNEL_WORKERS = Gauge(
    name="pretackler_channel_workers",
    documentation="Worker slots currently homed on each channel",
    labelnames=["channel"],
    registry=REGISTRY,
)

QUEUE_DEPTH = Gauge(
    name="pretackler_queue_depth",
    documentation="Items waiting in each channel queue",
    labelnames=["channel"],
    registry=REGISTRY,
)

# =============================================================================
# HISTOGRAMS
# =============================================================================

ITEM_DURATION = Histogram(
    name="pretackler_item_duration_seconds",
    documentation="Wall time from dispatch to terminal outcome",
    labelnames=["channel"],
    buckets=(1, 5, 15, 30, 60, 120, 300, 600, 1800, float("inf")),
    registry=REGISTRY,
)

RATE_LIMIT_WAIT = Histogram(
    name="pretackler_rate_limit_wait_seconds",
    documentation="Time spent waiting for rate limiter tokens",
    buckets=(0.01, 0.1, 0.5, 1, 2, 5, 10, 30, float("inf")),
    registry=REGISTRY,
)


def get_metrics_text() -> bytes:
    """Generate metrics in Prometheus text exposition format."""
    return generate_latest(REGISTRY)


def write_metrics_file(path: Union[str, Path]) -> Path:
    """Write the registry to a node-exporter style textfile atomically."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    write_to_textfile(str(path), REGISTRY)
    return path
