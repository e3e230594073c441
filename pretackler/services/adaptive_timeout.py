"""Process-wide history of stream inter-chunk intervals.

Workers that finish a Long channel stream contribute their observed
intervals; the router reads the p95 to widen the next item's idle
timeout. History lives in memory only and is bounded per channel.
"""

import math
import threading
from collections import deque
from typing import Deque, Dict, Iterable, Optional

import structlog

from pretackler.models.work import Channel

logger = structlog.get_logger()

DEFAULT_HISTORY_SIZE = 256
DEFAULT_MIN_SAMPLES = 10


def percentile(values: Iterable[float], pct: float) -> Optional[float]:
    """Nearest-rank percentile; None for an empty sample."""
    ordered = sorted(values)
    if not ordered:
        return None
    rank = max(1, math.ceil(pct / 100.0 * len(ordered)))
    return ordered[rank - 1]


class AdaptiveTimeoutState:
    """Bounded ring buffer of intervals per channel, guarded by a short lock."""

    def __init__(
        self,
        history_size: int = DEFAULT_HISTORY_SIZE,
        min_samples: int = DEFAULT_MIN_SAMPLES,
    ) -> None:
        self.history_size = history_size
        self.min_samples = min_samples
        self._samples: Dict[Channel, Deque[float]] = {
            channel: deque(maxlen=history_size) for channel in Channel
        }
        self._lock = threading.Lock()

    def record(self, channel: Channel, intervals: Iterable[float]) -> int:
        """Append intervals for a channel. Returns the number recorded."""
        batch = [float(i) for i in intervals if i >= 0]
        if not batch:
            return 0
        with self._lock:
            self._samples[channel].extend(batch)
            size = len(self._samples[channel])
        logger.debug(
            "adaptive_samples_recorded",
            channel=channel.value,
            recorded=len(batch),
            history=size,
        )
        return len(batch)

    def sample_count(self, channel: Channel) -> int:
        with self._lock:
            return len(self._samples[channel])

    def p95(self, channel: Channel) -> Optional[float]:
        """p95 of recent intervals, or None below the minimum sample count."""
        with self._lock:
            snapshot = list(self._samples[channel])
        if len(snapshot) < self.min_samples:
            return None
        return percentile(snapshot, 95.0)
