"""Retry policy for generation requests

Drives the per-attempt state machine:

    Pending -> Sent -> Success
                    -> RetryableFailure -> Backoff -> Pending
                    -> FatalFailure

Features:
- Capped exponential backoff: min(base * factor^(attempt-1), max_delay)
- Hard attempt cap; the last failure of any class is reported fatal
- Every transition is logged with attempt index, status and wait
"""

import asyncio
from typing import Awaitable, Callable, List, Optional, TypeVar

import structlog

from pretackler.models.config import RetryConfig
from pretackler.models.work import AttemptRecord, AttemptState
from pretackler.utils.exceptions import RetryableError, RetryExhaustedError

logger = structlog.get_logger(__name__)


T = TypeVar("T")


class RetryPolicy:
    """Async retry driver with deterministic capped exponential backoff.

    Retryable errors are instances of RetryableError (429, 5xx, connect
    failure, overall timeout, idle timeout, unfinished stream). Anything
    else is fatal and re-raised after the first occurrence.
    """

    def __init__(
        self,
        config: RetryConfig,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize retry policy.

        Args:
            config: Attempt cap and backoff constants
            sleep: Awaitable used for backoff waits (injectable for tests)
        """
        self.config = config
        self._sleep = sleep

    def calculate_delay(self, attempt: int) -> float:
        """Backoff to wait after the given failed attempt (1-indexed)."""
        delay = self.config.base_delay_seconds * (
            self.config.backoff_factor ** (attempt - 1)
        )
        return min(delay, self.config.max_delay_seconds)

    @staticmethod
    def is_retryable(error: BaseException) -> bool:
        return isinstance(error, RetryableError)

    async def execute(
        self,
        func: Callable[[int], Awaitable[T]],
        context: Optional["RetryContext"] = None,
        on_retry: Optional[Callable[[int, Exception, float], None]] = None,
    ) -> T:
        """Run func until it succeeds, fails fatally, or attempts run out.

        Args:
            func: Async callable receiving the 1-indexed attempt number
            context: Optional tracker collecting AttemptRecords
            on_retry: Called with (attempt, error, delay) before each backoff

        Returns:
            Result of the successful attempt

        Raises:
            RetryExhaustedError: The final allowed attempt failed
            Exception: Any non-retryable error, unchanged
        """
        context = context if context is not None else RetryContext()
        wait = 0.0

        for attempt in range(1, self.config.max_attempts + 1):
            record = context.start_attempt(attempt, wait)
            record.state = AttemptState.SENT
            try:
                result = await func(attempt)
            except Exception as e:
                record.status = getattr(e, "status", None)
                record.error = f"{type(e).__name__}: {e}"

                if not self.is_retryable(e):
                    record.state = AttemptState.FATAL_FAILURE
                    logger.warning(
                        "attempt_failed",
                        attempt=attempt,
                        max_attempts=self.config.max_attempts,
                        status=record.status,
                        error_type=type(e).__name__,
                        retryable=False,
                    )
                    raise

                record.state = AttemptState.RETRYABLE_FAILURE
                if attempt >= self.config.max_attempts:
                    record.state = AttemptState.FATAL_FAILURE
                    logger.warning(
                        "retries_exhausted",
                        attempt=attempt,
                        max_attempts=self.config.max_attempts,
                        status=record.status,
                        error_type=type(e).__name__,
                    )
                    raise RetryExhaustedError(attempt, e) from e

                wait = self.calculate_delay(attempt)
                record.state = AttemptState.BACKOFF
                context.record_retry(wait, e)

                logger.warning(
                    "retry_attempt",
                    attempt=attempt,
                    max_attempts=self.config.max_attempts,
                    status=record.status,
                    error_type=type(e).__name__,
                    error_message=str(e),
                    delay_seconds=wait,
                )

                if on_retry is not None:
                    on_retry(attempt, e, wait)

                await self._sleep(wait)
            else:
                record.state = AttemptState.SUCCESS
                return result

        raise RuntimeError(  # pragma: no cover
            "Retry loop completed without result or exception"
        )


class RetryContext:
    """Tracks attempts and retries for a single item."""

    def __init__(self) -> None:
        self.records: List[AttemptRecord] = []
        self.total_retries: int = 0
        self.total_delay_seconds: float = 0.0
        self.last_error: Optional[Exception] = None

    @property
    def total_attempts(self) -> int:
        return len(self.records)

    @property
    def last_status(self) -> Optional[int]:
        for record in reversed(self.records):
            if record.status is not None:
                return record.status
        return None

    def start_attempt(self, attempt: int, wait_before: float) -> AttemptRecord:
        record = AttemptRecord(attempt_number=attempt, wait_before_attempt=wait_before)
        self.records.append(record)
        return record

    def record_retry(self, delay: float, error: Exception) -> None:
        self.total_retries += 1
        self.total_delay_seconds += delay
        self.last_error = error

    def waits(self) -> List[float]:
        """Backoff waits that preceded attempts 2..n."""
        return [r.wait_before_attempt for r in self.records[1:]]
