"""Configuration models for PreTackler

Defines the knobs consumed by the router, scheduler, worker and CLI:
- Model and sampling settings for the generation API
- Base timeouts and the Long channel routing policy
- Retry, rate-limit and skip-filter settings
"""

from enum import Enum
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_ENDPOINT = "https://api.deepseek.com/chat/completions"
DEFAULT_MODEL = "deepseek-chat"
DEFAULT_PROMPT_FILE = "prompt_template.md"


class FaultKind(str, Enum):
    """Local acceptance-test fault injection modes."""

    RATE_LIMIT = "429"
    SERVER_ERROR = "5xx"
    IDLE = "idle"


class ModelSettings(BaseModel):
    """Generation API request settings"""

    endpoint: str = Field(default=DEFAULT_ENDPOINT, min_length=1)
    model: str = Field(default=DEFAULT_MODEL, min_length=1)
    temperature: float = Field(default=0.65, ge=0.0, le=2.0)
    top_k: int = Field(default=1, ge=1)


class TimeoutSettings(BaseModel):
    """Base timeouts in seconds. 0 means unlimited."""

    connect_timeout_seconds: float = Field(default=15.0, ge=0.0)
    request_timeout_seconds: float = Field(default=45.0, ge=0.0)
    stream_idle_timeout_seconds: float = Field(default=30.0, ge=0.0)


class ChannelSettings(BaseModel):
    """Long channel routing and timeout policy"""

    enabled: bool = True
    bytes_threshold: int = Field(default=524_288, ge=1)
    lines_threshold: int = Field(default=4000, ge=1)
    timeout_multiplier: float = Field(default=5.0, ge=1.0)
    # Explicit overrides are used verbatim; 0 disables enforcement
    request_timeout_seconds: Optional[float] = Field(default=None, ge=0.0)
    idle_timeout_seconds: Optional[float] = Field(default=None, ge=0.0)
    adaptive_idle_enabled: bool = True
    adaptive_min_samples: int = Field(default=10, ge=1)
    adaptive_history_size: int = Field(default=256, ge=10, le=10_000)
    long_workers: Optional[int] = Field(
        default=None,
        ge=0,
        description="Slots homed on the Long channel (default: half of total)",
    )


class RetryConfig(BaseModel):
    """Retry policy with capped exponential backoff

    delay(attempt) = min(base * factor^(attempt-1), max_delay)
    """

    max_attempts: int = Field(
        default=5,
        ge=1,
        le=20,
        description="Total attempts (1 initial + N-1 retries)",
    )
    base_delay_seconds: float = Field(default=0.5, ge=0.0, le=60.0)
    backoff_factor: float = Field(default=2.0, ge=1.0, le=10.0)
    max_delay_seconds: float = Field(default=30.0, ge=0.0, le=600.0)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "max_attempts": 5,
                "base_delay_seconds": 0.5,
                "backoff_factor": 2.0,
                "max_delay_seconds": 30.0,
            }
        }
    )


class RateLimitConfig(BaseModel):
    """Token bucket admission control. Both buckets are off by default."""

    requests_per_second: Optional[float] = Field(default=None, gt=0.0)
    bytes_per_second: Optional[int] = Field(default=None, gt=0)

    @property
    def enabled(self) -> bool:
        return self.requests_per_second is not None or self.bytes_per_second is not None


class FilterSettings(BaseModel):
    """Skip rules applied during enumeration"""

    skip_extensions: List[str] = Field(default_factory=list)
    skip_larger_than_mb: Optional[int] = Field(default=None, ge=1)

    @field_validator("skip_extensions")
    @classmethod
    def normalize_extensions(cls, v: List[str]) -> List[str]:
        normalized = []
        for ext in v:
            ext = ext.strip().lower().lstrip(".")
            if ext:
                normalized.append(ext)
        return normalized


class PretacklerConfig(BaseModel):
    """Top-level run configuration"""

    version: str = Field(default="v1", min_length=1, pattern=r"^[\w.\-]+$")
    prompt_path: Path = Path(DEFAULT_PROMPT_FILE)
    concurrency_ceil: Optional[int] = Field(default=None, ge=1)
    inject_fault: Optional[FaultKind] = None
    verbose: bool = False

    api: ModelSettings = Field(default_factory=ModelSettings)
    timeouts: TimeoutSettings = Field(default_factory=TimeoutSettings)
    long_channel: ChannelSettings = Field(default_factory=ChannelSettings)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    filters: FilterSettings = Field(default_factory=FilterSettings)

    @model_validator(mode="after")
    def validate_fault_injection(self) -> "PretacklerConfig":
        # An injected stall would never be detected without an idle deadline
        if (
            self.inject_fault == FaultKind.IDLE
            and self.timeouts.stream_idle_timeout_seconds == 0
        ):
            raise ValueError("inject_fault=idle requires a non-zero stream idle timeout")
        return self
