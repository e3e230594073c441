"""Batch orchestration.

Single entry point used by the CLI: enumerates the input, routes every
file, sizes the worker pool, runs the dual-channel scheduler, and folds
the outcomes into a BatchResult.

Usage:
    runner = BatchRunner(config, api_key=key, prompt=prompt)
    result = await runner.run(Path("./project"))
"""

import asyncio
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import structlog

from pretackler.models.config import PretacklerConfig
from pretackler.models.work import ItemOutcome, OutcomeStatus, WorkItem
from pretackler.observability.context import correlation_id_context
from pretackler.observability.metrics import ITEMS_PROCESSED
from pretackler.orchestration.result import BatchResult
from pretackler.orchestration.scheduler import DualChannelScheduler, validate_allocation
from pretackler.services.adaptive_timeout import AdaptiveTimeoutState
from pretackler.services.capacity import estimate_concurrency
from pretackler.services.file_collector import FileCollector, SkippedFile
from pretackler.services.generation_client import FaultInjector, GenerationClient
from pretackler.services.router import Router
from pretackler.services.worker import Worker
from pretackler.utils.exceptions import ConfigError
from pretackler.utils.rate_limiter import RateLimiter
from pretackler.utils.retry import RetryPolicy

logger = structlog.get_logger()

SUMMARY_EXTENSION = "md"


def summary_file_name(file_name: str, version: str) -> str:
    return f"{file_name}.summary.{version}.{SUMMARY_EXTENSION}"


def build_output_root(input_dir: Path, version: str) -> Path:
    """Sibling directory `<dir>.summaries.<version>` mirroring input_dir."""
    input_dir = Path(input_dir).resolve()
    return input_dir.parent / f"{input_dir.name}.summaries.{version}"


@dataclass
class BatchPlan:
    """Routed items and skips for one input, before anything is sent."""

    input_path: Path
    output_root: Optional[Path]
    items: List[WorkItem] = field(default_factory=list)
    skipped: List[SkippedFile] = field(default_factory=list)
    directories: List[Path] = field(default_factory=list)


class BatchRunner:
    """Wires router, workers and scheduler for one batch run."""

    def __init__(
        self,
        config: PretacklerConfig,
        api_key: str,
        prompt: str,
        client: Optional[GenerationClient] = None,
    ) -> None:
        self.config = config
        self._api_key = api_key
        self.prompt = prompt
        self._client = client

        channel = config.long_channel
        self.adaptive_state = AdaptiveTimeoutState(
            history_size=channel.adaptive_history_size,
            min_samples=channel.adaptive_min_samples,
        )
        self.router = Router(config.timeouts, channel, self.adaptive_state)
        self.collector = FileCollector(config.filters)

    def validate(self) -> None:
        """Startup checks that must pass before anything is scheduled.

        Raises:
            ConfigError: Worker allocation cannot honour the configured ceiling,
                or long_workers leaves the Long channel without a slot
        """
        channel = self.config.long_channel
        if channel.enabled and channel.long_workers is not None and channel.long_workers < 1:
            raise ConfigError(
                f"long_workers must be at least 1 while the long channel is enabled, "
                f"got {channel.long_workers}"
            )
        if self.config.concurrency_ceil is not None:
            validate_allocation(
                self.config.concurrency_ceil,
                self.config.long_channel.enabled,
                self.config.long_channel.long_workers,
            )

    def plan(self, input_path: Path) -> BatchPlan:
        """Enumerate and route input_path without creating any output."""
        input_path = Path(input_path)
        enumeration = self.collector.collect(input_path)
        version = self.config.version

        if input_path.is_dir():
            output_root: Optional[Path] = build_output_root(input_path, version)
        else:
            output_root = None

        plan = BatchPlan(
            input_path=input_path,
            output_root=output_root,
            skipped=enumeration.skipped,
            directories=enumeration.directories,
        )
        for source in enumeration.files:
            if output_root is None:
                target = source.path.with_name(summary_file_name(source.path.name, version))
            else:
                target = (output_root / source.relative_path).with_name(
                    summary_file_name(source.path.name, version)
                )
            plan.items.append(self.router.classify(source, target))
        return plan

    async def run(self, input_path: Path) -> BatchResult:
        """Process every file under input_path.

        Returns:
            BatchResult; per-item failures are counted, never raised
        """
        started = time.monotonic()
        self.validate()

        with correlation_id_context() as run_id:
            plan = self.plan(input_path)
            result = BatchResult(output_root=plan.output_root)

            for skipped in plan.skipped:
                ITEMS_PROCESSED.labels(channel="none", status=OutcomeStatus.SKIPPED.value).inc()
                result.add(
                    ItemOutcome(
                        path=skipped.path,
                        status=OutcomeStatus.SKIPPED,
                        reason=skipped.reason,
                    )
                )

            if plan.output_root is not None:
                for rel_dir in plan.directories:
                    (plan.output_root / rel_dir).mkdir(parents=True, exist_ok=True)

            if not plan.items:
                logger.info("no_files_to_process", input=str(input_path), run_id=run_id)
                result.duration_seconds = time.monotonic() - started
                return result

            for outcome in await self._execute(plan.items):
                result.add(outcome)

            result.duration_seconds = time.monotonic() - started
            logger.info("batch_complete", run_id=run_id, **result.to_dict())
            return result

    async def _execute(self, items: List[WorkItem]) -> List[ItemOutcome]:
        total = await asyncio.to_thread(
            estimate_concurrency, len(items), self.config.concurrency_ceil
        )
        long_workers = self._long_workers_for(total)
        scheduler_kwargs = dict(
            long_channel_enabled=self.config.long_channel.enabled,
            long_workers=long_workers,
        )
        # Allocation is validated before the client opens any connection
        validate_allocation(total, **scheduler_kwargs)

        client = self._client or self._build_client(items)
        async with client:
            worker = Worker(
                client=client,
                router=self.router,
                retry_policy=RetryPolicy(self.config.retry),
                prompt=self.prompt,
                settings=self.config.api,
                rate_limiter=RateLimiter.from_config(self.config.rate_limit),
                adaptive_state=self.adaptive_state,
                adaptive_enabled=self.config.long_channel.adaptive_idle_enabled,
            )
            scheduler = DualChannelScheduler(total, worker.process, **scheduler_kwargs)
            return await scheduler.run_items(items)

    def _long_workers_for(self, total: int) -> Optional[int]:
        requested = self.config.long_channel.long_workers
        if requested is None or not self.config.long_channel.enabled:
            return requested
        # The pool may be smaller than the ceiling when there are few files
        if total < 2:
            return min(requested, total)
        return min(requested, total - 1)

    def _build_client(self, items: List[WorkItem]) -> GenerationClient:
        fault = None
        if self.config.inject_fault is not None:
            longest_idle = max(item.effective_idle_timeout for item in items)
            fault = FaultInjector(self.config.inject_fault, stall_seconds=longest_idle * 2 + 1)
            logger.warning("fault_injection_enabled", fault=self.config.inject_fault.value)
        return GenerationClient(
            self.config.api,
            self._api_key,
            connect_timeout=self.config.timeouts.connect_timeout_seconds,
            fault=fault,
        )
