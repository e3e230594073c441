"""Streaming response consumer with an idle watchdog.

Reads `data:`-prefixed lines from a chunked response, appends each decoded
delta to the output sink as it arrives, and fails the attempt when no
line arrives within the idle timeout. The `[DONE]` sentinel ends the
stream; closure without it is an unfinished stream.
"""

import asyncio
import json
import time
from dataclasses import dataclass, field
from typing import Any, AsyncIterable, Callable, List, Protocol, Union

import structlog

from pretackler.utils.exceptions import (
    MalformedStreamError,
    StreamIdleTimeoutError,
    UnfinishedStreamError,
)

logger = structlog.get_logger()

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


class TextSink(Protocol):
    def write(self, text: str) -> None: ...


@dataclass
class StreamStats:
    """What a finished stream looked like."""

    lines: int = 0
    data_events: int = 0
    chars: int = 0
    intervals: List[float] = field(default_factory=list)


class StreamWatcher:
    """Consumes one streamed response for one attempt.

    Args:
        idle_timeout: Max seconds between lines; 0 disables the deadline
        clock: Monotonic clock used for interval sampling
    """

    def __init__(
        self,
        idle_timeout: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.idle_timeout = idle_timeout
        self._clock = clock

    async def consume(
        self, lines: AsyncIterable[Union[bytes, str]], sink: TextSink
    ) -> StreamStats:
        """Drain lines into sink until the completion sentinel.

        Raises:
            StreamIdleTimeoutError: Idle deadline elapsed with no new line
            UnfinishedStreamError: Input ended before `[DONE]`
            MalformedStreamError: A payload did not match the schema
        """
        stats = StreamStats()
        iterator = lines.__aiter__()
        last_seen = self._clock()

        while True:
            try:
                if self.idle_timeout > 0:
                    raw = await asyncio.wait_for(
                        iterator.__anext__(), timeout=self.idle_timeout
                    )
                else:
                    raw = await iterator.__anext__()
            except StopAsyncIteration:
                raise UnfinishedStreamError(
                    f"stream closed before {DONE_SENTINEL} "
                    f"after {stats.data_events} events"
                )
            except asyncio.TimeoutError:
                logger.debug("stream_idle_timeout", idle_timeout_seconds=self.idle_timeout)
                raise StreamIdleTimeoutError(
                    f"no stream data for {self.idle_timeout}s"
                )

            line = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
            line = line.strip()
            stats.lines += 1
            if not line:
                continue

            now = self._clock()
            stats.intervals.append(now - last_seen)
            last_seen = now

            if not line.startswith(DATA_PREFIX):
                continue

            payload = line[len(DATA_PREFIX):].strip()
            if payload == DONE_SENTINEL:
                return stats

            stats.data_events += 1
            for text in self._parse_payload(payload):
                sink.write(text)
                stats.chars += len(text)

    @staticmethod
    def _parse_payload(payload: str) -> List[str]:
        try:
            parsed: Any = json.loads(payload)
        except json.JSONDecodeError as e:
            raise MalformedStreamError(f"invalid JSON in stream event: {e}") from e

        if not isinstance(parsed, dict) or not isinstance(parsed.get("choices"), list):
            raise MalformedStreamError("stream event has no choices list")

        texts = []
        for choice in parsed["choices"]:
            if not isinstance(choice, dict):
                raise MalformedStreamError("stream choice is not an object")
            delta = choice.get("delta") or {}
            content = delta.get("content") if isinstance(delta, dict) else None
            if isinstance(content, str) and content:
                texts.append(content)
        return texts
