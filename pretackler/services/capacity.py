"""Concurrency ceiling estimation.

Without an explicit ceiling the pool size is derived from host resources,
each with 15% headroom:
- CPU: 85% of logical cores
- memory: available memory at ~64 MB per in-flight request
- network: rx+tx throughput sampled over half a second at ~512 KB/s per
  request; below one request's worth the link is treated as unmeasured and
  does not constrain the pool

The smallest limit wins, clamped to [1, number of files]. The network sample
blocks, so async callers run this in a thread.
"""

import math
import time
from typing import Callable, Optional

import psutil
import structlog

logger = structlog.get_logger()

PER_TASK_MEMORY_BYTES = 64 * 1024 * 1024
PER_TASK_BANDWIDTH_BYTES = 512 * 1024
NETWORK_SAMPLE_SECONDS = 0.5
HEADROOM = 0.85


def _network_bytes() -> int:
    counters = psutil.net_io_counters()
    if counters is None:
        return 0
    return counters.bytes_recv + counters.bytes_sent


def sample_bandwidth(
    interval: float = NETWORK_SAMPLE_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
) -> float:
    """Observed rx+tx bytes per second across interval."""
    before = _network_bytes()
    sleep(interval)
    delta = max(0, _network_bytes() - before)
    return delta / interval


def estimate_concurrency(
    total_files: int,
    ceiling: Optional[int] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """Number of worker slots for a batch of total_files."""
    total_files = max(1, total_files)

    if ceiling is not None:
        return min(max(1, ceiling), total_files)

    cpu_cores = psutil.cpu_count(logical=True) or 1
    cpu_limit = math.ceil(cpu_cores * HEADROOM)

    available = max(psutil.virtual_memory().available, PER_TASK_MEMORY_BYTES)
    memory_limit = max(1, math.floor(available / PER_TASK_MEMORY_BYTES * HEADROOM))

    bandwidth = sample_bandwidth(sleep=sleep)
    if bandwidth < PER_TASK_BANDWIDTH_BYTES:
        network_limit = max(cpu_limit, memory_limit)
    else:
        network_limit = max(1, math.ceil(bandwidth / PER_TASK_BANDWIDTH_BYTES * HEADROOM))

    limit = max(1, min(cpu_limit, memory_limit, network_limit, total_files))
    logger.debug(
        "concurrency_estimated",
        cpu_cores=cpu_cores,
        cpu_limit=cpu_limit,
        memory_limit=memory_limit,
        bandwidth_bytes_per_sec=round(bandwidth),
        network_limit=network_limit,
        total_files=total_files,
        concurrency=limit,
    )
    return limit
