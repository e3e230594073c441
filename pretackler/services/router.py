"""Routing and timeout policy.

Classifies each file into the Normal or Long channel and derives the
effective request and idle timeouts for it:

- Long iff byte_size >= bytes_threshold OR line_count >= lines_threshold
- Explicit Long overrides are used verbatim (0 = unlimited)
- Otherwise Long timeouts are base * multiplier, Normal uses the base
- With adaptive idle enabled, Long idle timeouts widen to
  max(configured, p95(recent intervals) * 1.2); 0 is never widened
"""

from pathlib import Path
from typing import Callable, Dict, Optional, Tuple

import structlog

from pretackler.models.config import ChannelSettings, TimeoutSettings
from pretackler.models.work import Channel, SourceFile, WorkItem
from pretackler.observability.metrics import ROUTE_DECISIONS
from pretackler.services.adaptive_timeout import AdaptiveTimeoutState

logger = structlog.get_logger()

ADAPTIVE_IDLE_HEADROOM = 1.2

Timeouts = Tuple[float, float]


class Router:
    """Assigns channels and timeouts to enumerated files."""

    def __init__(
        self,
        timeouts: TimeoutSettings,
        long_channel: ChannelSettings,
        adaptive_state: Optional[AdaptiveTimeoutState] = None,
    ):
        self.timeouts = timeouts
        self.long_channel = long_channel
        self.adaptive_state = adaptive_state
        self._resolvers: Dict[Channel, Callable[[], Timeouts]] = {
            Channel.NORMAL: self._normal_timeouts,
            Channel.LONG: self._long_timeouts,
        }

    def match_threshold(self, byte_size: int, line_count: int) -> str:
        """Name of the threshold(s) a file meets, or "none"."""
        by_bytes = byte_size >= self.long_channel.bytes_threshold
        by_lines = line_count >= self.long_channel.lines_threshold
        if by_bytes and by_lines:
            return "bytes+lines"
        if by_bytes:
            return "bytes"
        if by_lines:
            return "lines"
        return "none"

    def classify(self, source: SourceFile, output_path: Path) -> WorkItem:
        matched = self.match_threshold(source.byte_size, source.line_count)
        if self.long_channel.enabled and matched != "none":
            channel = Channel.LONG
        else:
            channel = Channel.NORMAL

        request_timeout, idle_timeout = self._resolvers[channel]()

        item = WorkItem(
            path=source.path,
            output_path=output_path,
            byte_size=source.byte_size,
            line_count=source.line_count,
            channel=channel,
            effective_request_timeout=request_timeout,
            effective_idle_timeout=idle_timeout,
            matched_threshold=matched,
        )

        ROUTE_DECISIONS.labels(channel=channel.value, threshold=matched).inc()
        logger.info(
            "route_decision",
            file=str(source.path),
            channel=channel.value,
            matched_threshold=matched,
            byte_size=source.byte_size,
            line_count=source.line_count,
            request_timeout_seconds=request_timeout,
            idle_timeout_seconds=idle_timeout,
        )
        return item

    def effective_idle_timeout(self, item: WorkItem) -> float:
        """Idle timeout to enforce on the next attempt of item."""
        configured = item.effective_idle_timeout
        if (
            item.channel is not Channel.LONG
            or configured == 0
            or not self.long_channel.adaptive_idle_enabled
            or self.adaptive_state is None
        ):
            return configured

        p95 = self.adaptive_state.p95(Channel.LONG)
        if p95 is None:
            return configured

        widened = max(configured, p95 * ADAPTIVE_IDLE_HEADROOM)
        if widened > configured:
            logger.debug(
                "adaptive_idle_widened",
                file=str(item.path),
                configured_seconds=configured,
                p95_seconds=round(p95, 3),
                idle_timeout_seconds=round(widened, 3),
            )
        return widened

    def _normal_timeouts(self) -> Timeouts:
        return (
            self.timeouts.request_timeout_seconds,
            self.timeouts.stream_idle_timeout_seconds,
        )

    def _long_timeouts(self) -> Timeouts:
        multiplier = self.long_channel.timeout_multiplier
        request = self.long_channel.request_timeout_seconds
        if request is None:
            request = self.timeouts.request_timeout_seconds * multiplier
        idle = self.long_channel.idle_timeout_seconds
        if idle is None:
            idle = self.timeouts.stream_idle_timeout_seconds * multiplier
        return float(request), float(idle)
