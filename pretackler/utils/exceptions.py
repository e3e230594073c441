"""Exception hierarchy for the PreTackler batch pipeline

This module defines the error taxonomy used by the scheduler and workers:
- ConfigError aborts the whole run before scheduling begins
- RetryableError subclasses are transient and go through backoff
- FatalItemError subclasses fail a single item without touching its siblings

All exceptions inherit from PretacklerError so callers can catch every
pipeline-related error in a single except block when needed.
"""

from typing import Optional


class PretacklerError(Exception):
    """Base exception for all PreTackler errors"""

    pass


class ConfigError(PretacklerError):
    """Configuration is unusable

    Raised when:
    - Prompt template is missing or empty
    - Thresholds or worker allocation are invalid
    - No API key could be resolved
    - Config file fails to parse or validate

    Always fatal for the run: raised before any item is scheduled.
    """

    pass


# Retryable failures


class RetryableError(PretacklerError):
    """Base for transient failures that may succeed on a later attempt."""

    status: Optional[int] = None


class TransportError(RetryableError):
    """Failure while talking to the generation API."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class ConnectError(TransportError):
    """Could not establish a connection to the API endpoint."""

    pass


class RequestTimeoutError(TransportError):
    """Overall request timeout elapsed before the attempt finished."""

    pass


class StreamIdleTimeoutError(TransportError):
    """No new stream chunk arrived within the idle timeout."""

    pass


class UnfinishedStreamError(TransportError):
    """Connection closed before the stream completion marker."""

    pass


class RateLimitedError(TransportError):
    """API returned HTTP 429.

    Attributes:
        retry_after: Seconds suggested by the Retry-After header, if any.
            Recorded for logging only; backoff follows the retry policy.
    """

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        retry_after: Optional[float] = None,
    ) -> None:
        super().__init__(message, status=429)
        self.retry_after = retry_after


class ServerError(TransportError):
    """API returned a 5xx status."""

    pass


# Fatal (per item) failures


class FatalItemError(PretacklerError):
    """Base for failures that end processing of one item.

    Never aborts the batch; the worker records the reason and moves on.
    """

    status: Optional[int] = None


class ProtocolError(FatalItemError):
    """Response did not follow the wire contract."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class MalformedStreamError(ProtocolError):
    """A `data:` payload could not be decoded into the expected schema."""

    pass


class UnexpectedStatusError(ProtocolError):
    """API returned a non-429 4xx status (bad request, auth, not found...)."""

    pass


class OutputWriteError(FatalItemError):
    """Temp file creation, write or atomic rename failed.

    Cleanup of the temp file is attempted before this is raised.
    """

    pass


class InputReadError(FatalItemError):
    """Source file could not be read."""

    pass


class RetryExhaustedError(FatalItemError):
    """Every allowed attempt failed with a retryable error.

    Attributes:
        attempts: Number of attempts made
        last_error: Error raised by the final attempt
    """

    def __init__(self, attempts: int, last_error: Exception) -> None:
        super().__init__(
            f"gave up after {attempts} attempts: "
            f"{type(last_error).__name__}: {last_error}"
        )
        self.attempts = attempts
        self.last_error = last_error
        self.status = getattr(last_error, "status", None)
