"""End-to-end executor for one work item.

Each attempt runs: rate-limit wait -> send -> stream into WriterGuard ->
commit. Failures go through the retry policy; whatever the outcome, the
error is contained here and reported as an ItemOutcome so sibling items
are never affected.
"""

import asyncio
import time
from typing import Callable, Optional

import structlog

from pretackler.models.config import ModelSettings
from pretackler.models.work import Channel, ItemOutcome, OutcomeStatus, WorkItem
from pretackler.observability.metrics import (
    ATTEMPTS_TOTAL,
    BYTES_SENT,
    ITEM_DURATION,
    ITEMS_PROCESSED,
    RATE_LIMIT_WAIT,
)
from pretackler.services.adaptive_timeout import AdaptiveTimeoutState
from pretackler.services.generation_client import GenerationClient, encode_body
from pretackler.services.prompt_builder import build_request_body, build_user_message
from pretackler.services.router import Router
from pretackler.services.stream_watcher import StreamStats, StreamWatcher
from pretackler.services.writer_guard import WriterGuard
from pretackler.utils.exceptions import (
    FatalItemError,
    InputReadError,
    RequestTimeoutError,
    RetryableError,
)
from pretackler.utils.rate_limiter import RateLimiter
from pretackler.utils.retry import RetryContext, RetryPolicy

logger = structlog.get_logger()


class Worker:
    """Processes work items; safe to share between scheduler slots.

    Shared state (rate budget, adaptive history) is passed in explicitly.
    """

    def __init__(
        self,
        client: GenerationClient,
        router: Router,
        retry_policy: RetryPolicy,
        prompt: str,
        settings: ModelSettings,
        rate_limiter: Optional[RateLimiter] = None,
        adaptive_state: Optional[AdaptiveTimeoutState] = None,
        adaptive_enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client = client
        self.router = router
        self.retry_policy = retry_policy
        self.prompt = prompt
        self.settings = settings
        self.rate_limiter = rate_limiter
        self.adaptive_state = adaptive_state
        self.adaptive_enabled = adaptive_enabled
        self._clock = clock

    async def process(self, item: WorkItem, slot_id: int = 0) -> ItemOutcome:
        """Run item to a terminal outcome. Never raises for per-item errors."""
        started = self._clock()
        context = RetryContext()
        outcome = ItemOutcome(
            path=item.path,
            status=OutcomeStatus.FAILED,
            channel=item.channel,
            output_path=item.output_path,
        )

        with structlog.contextvars.bound_contextvars(
            file=str(item.path), channel=item.channel.value, slot=slot_id
        ):
            logger.info(
                "item_started",
                byte_size=item.byte_size,
                line_count=item.line_count,
                request_timeout_seconds=item.effective_request_timeout,
                idle_timeout_seconds=item.effective_idle_timeout,
            )
            try:
                payload = await self._build_payload(item)
                outcome.bytes_sent = len(payload)

                async def attempt(number: int) -> StreamStats:
                    return await self._run_attempt(item, payload, number)

                stats = await self.retry_policy.execute(attempt, context=context)
            except FatalItemError as e:
                outcome.reason = str(e)
                outcome.http_status = e.status or context.last_status
            else:
                outcome.status = OutcomeStatus.SUCCEEDED
                outcome.chars_written = stats.chars
                self._contribute_samples(item, stats)
            finally:
                outcome.attempts = context.total_attempts
                outcome.attempt_log = list(context.records)
                outcome.duration_seconds = self._clock() - started

            self._report(item, outcome)
        return outcome

    async def _build_payload(self, item: WorkItem) -> bytes:
        try:
            content = await asyncio.to_thread(item.path.read_bytes)
        except OSError as e:
            raise InputReadError(f"cannot read {item.path}: {e}") from e
        message = build_user_message(item.path, content)
        return encode_body(build_request_body(self.settings, self.prompt, message))

    async def _run_attempt(self, item: WorkItem, payload: bytes, number: int) -> StreamStats:
        if self.rate_limiter is not None and self.rate_limiter.enabled:
            waited = await self.rate_limiter.acquire(
                len(payload), requester_id=str(item.path)
            )
            RATE_LIMIT_WAIT.observe(waited)

        idle_timeout = self.router.effective_idle_timeout(item)
        request_timeout = item.effective_request_timeout
        BYTES_SENT.labels(channel=item.channel.value).inc(len(payload))
        logger.debug(
            "attempt_sent",
            attempt=number,
            idle_timeout_seconds=idle_timeout,
            request_timeout_seconds=request_timeout,
        )

        try:
            if request_timeout > 0:
                try:
                    stats = await asyncio.wait_for(
                        self._stream_to_output(item, payload, idle_timeout),
                        timeout=request_timeout,
                    )
                except asyncio.TimeoutError:
                    raise RequestTimeoutError(
                        f"request exceeded {request_timeout}s overall timeout"
                    )
            else:
                stats = await self._stream_to_output(item, payload, idle_timeout)
        except RetryableError:
            ATTEMPTS_TOTAL.labels(channel=item.channel.value, outcome="retryable").inc()
            raise
        except FatalItemError:
            ATTEMPTS_TOTAL.labels(channel=item.channel.value, outcome="fatal").inc()
            raise

        ATTEMPTS_TOTAL.labels(channel=item.channel.value, outcome="success").inc()
        return stats

    async def _stream_to_output(
        self, item: WorkItem, payload: bytes, idle_timeout: float
    ) -> StreamStats:
        watcher = StreamWatcher(idle_timeout, clock=self._clock)
        with WriterGuard(item.output_path) as guard:
            async with self.client.open_stream(payload) as lines:
                stats = await watcher.consume(lines, guard)
            await guard.commit_async()
        return stats

    def _contribute_samples(self, item: WorkItem, stats: StreamStats) -> None:
        if (
            item.channel is Channel.LONG
            and self.adaptive_enabled
            and self.adaptive_state is not None
        ):
            self.adaptive_state.record(Channel.LONG, stats.intervals)

    def _report(self, item: WorkItem, outcome: ItemOutcome) -> None:
        channel = item.channel.value
        ITEMS_PROCESSED.labels(channel=channel, status=outcome.status.value).inc()
        ITEM_DURATION.labels(channel=channel).observe(outcome.duration_seconds)

        if outcome.succeeded:
            logger.info(
                "item_succeeded",
                output=str(outcome.output_path),
                attempts=outcome.attempts,
                duration_seconds=round(outcome.duration_seconds, 3),
                throughput_bytes_per_second=round(outcome.throughput_bytes_per_second, 1),
                chars_written=outcome.chars_written,
            )
        else:
            logger.error(
                "item_failed",
                attempts=outcome.attempts,
                http_status=outcome.http_status,
                reason=outcome.reason,
                duration_seconds=round(outcome.duration_seconds, 3),
            )
