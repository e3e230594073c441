"""Work item and outcome models.

Defines the unit of scheduling (WorkItem), its channel, the per-attempt
record kept by a worker, and the terminal outcome reported to the batch.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional


class Channel(str, Enum):
    """Scheduling lane. Closed set: every item belongs to exactly one."""

    NORMAL = "normal"
    LONG = "long"

    @property
    def other(self) -> "Channel":
        return Channel.LONG if self is Channel.NORMAL else Channel.NORMAL


class OutcomeStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


class AttemptState(str, Enum):
    """Per-attempt retry state machine"""

    PENDING = "pending"
    SENT = "sent"
    SUCCESS = "success"
    RETRYABLE_FAILURE = "retryable_failure"
    BACKOFF = "backoff"
    FATAL_FAILURE = "fatal_failure"


@dataclass(frozen=True)
class SourceFile:
    """A file produced by enumeration, with precomputed size metrics."""

    path: Path
    relative_path: Path
    byte_size: int
    line_count: int


@dataclass(frozen=True)
class WorkItem:
    """One file's unit of processing.

    Channel and timeouts are fixed by the router at classification.
    Timeouts are in seconds; 0 means unlimited.
    """

    path: Path
    output_path: Path
    byte_size: int
    line_count: int
    channel: Channel
    effective_request_timeout: float
    effective_idle_timeout: float
    matched_threshold: str = "none"

    @property
    def name(self) -> str:
        return self.path.name


@dataclass
class AttemptRecord:
    """Transient record of one attempt, owned by the processing worker."""

    attempt_number: int
    state: AttemptState = AttemptState.PENDING
    status: Optional[int] = None
    wait_before_attempt: float = 0.0
    error: Optional[str] = None


@dataclass
class ItemOutcome:
    """Terminal outcome of one item."""

    path: Path
    status: OutcomeStatus
    channel: Optional[Channel] = None
    output_path: Optional[Path] = None
    attempts: int = 0
    http_status: Optional[int] = None
    reason: Optional[str] = None
    duration_seconds: float = 0.0
    bytes_sent: int = 0
    chars_written: int = 0
    attempt_log: list = field(default_factory=list, repr=False)

    @property
    def retries(self) -> int:
        return max(0, self.attempts - 1)

    @property
    def succeeded(self) -> bool:
        return self.status == OutcomeStatus.SUCCEEDED

    @property
    def throughput_bytes_per_second(self) -> float:
        if self.duration_seconds <= 0:
            return 0.0
        return self.bytes_sent / self.duration_seconds
