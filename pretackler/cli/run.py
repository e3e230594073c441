"""Run command: summarize a file or a directory tree."""

import asyncio
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer

from pretackler.cli.utils import (
    display_error,
    display_info,
    display_success,
    display_warning,
    handle_errors,
    load_config,
    split_extensions,
)
from pretackler.models.config import FaultKind
from pretackler.observability.logging import configure_logging
from pretackler.observability.metrics import write_metrics_file
from pretackler.orchestration.batch import BatchPlan, BatchRunner
from pretackler.orchestration.result import BatchResult
from pretackler.services.credentials import load_api_key, load_prompt


@handle_errors
def run_command(
    input_path: Path = typer.Argument(
        ..., exists=True, help="Source file or directory to summarize"
    ),
    config_path: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Optional YAML config file"
    ),
    version: Optional[str] = typer.Option(
        None, "--version", help="Summary version tag used in output names"
    ),
    prompt_path: Optional[Path] = typer.Option(
        None, "--prompt", help="System prompt template file"
    ),
    model: Optional[str] = typer.Option(None, "--model", help="Model name"),
    temperature: Optional[float] = typer.Option(None, "--temperature"),
    top_k: Optional[int] = typer.Option(None, "--top-k"),
    concurrency_ceil: Optional[int] = typer.Option(
        None,
        "--concurrency-ceil",
        "--max-concurrency",
        help="Upper bound on concurrent requests (default: estimated from host)",
    ),
    rate_limit_rps: Optional[float] = typer.Option(
        None, "--rate-limit-rps", help="Requests per second budget"
    ),
    rate_limit_bytes: Optional[int] = typer.Option(
        None, "--rate-limit-bytes-per-sec", help="Request body bytes per second budget"
    ),
    connect_timeout: Optional[float] = typer.Option(
        None, "--connect-timeout", help="Connect timeout in seconds (0 = unlimited)"
    ),
    request_timeout: Optional[float] = typer.Option(
        None, "--request-timeout", help="Overall attempt timeout in seconds (0 = unlimited)"
    ),
    stream_idle_timeout: Optional[float] = typer.Option(
        None, "--stream-idle-timeout", help="Max silence between chunks (0 = unlimited)"
    ),
    skip_large_mb: Optional[int] = typer.Option(
        None, "--skip-large-file-size-mb", help="Skip files larger than this many MB"
    ),
    skip_ext: Optional[List[str]] = typer.Option(
        None, "--skip-ext", help="Extension to skip (repeatable or comma-separated)"
    ),
    long_bytes: Optional[int] = typer.Option(
        None, "--long-file-bytes-threshold", help="Bytes at which a file is Long"
    ),
    long_lines: Optional[int] = typer.Option(
        None, "--long-file-lines-threshold", help="Lines at which a file is Long"
    ),
    long_enabled: Optional[bool] = typer.Option(
        None, "--long-channel-enabled/--no-long-channel", help="Route large files separately"
    ),
    long_multiplier: Optional[float] = typer.Option(
        None, "--long-channel-timeout-multiplier"
    ),
    long_request_timeout: Optional[float] = typer.Option(
        None, "--long-channel-request-timeout", help="Long request timeout override"
    ),
    long_idle_timeout: Optional[float] = typer.Option(
        None, "--long-channel-idle-timeout", help="Long idle timeout override"
    ),
    long_adaptive: Optional[bool] = typer.Option(
        None,
        "--long-channel-adaptive-idle/--no-long-channel-adaptive-idle",
        help="Widen the Long idle timeout from observed chunk gaps",
    ),
    long_workers: Optional[int] = typer.Option(
        None, "--long-workers", help="Worker slots homed on the Long channel"
    ),
    inject_fault: Optional[FaultKind] = typer.Option(
        None, "--inject-fault", help="Simulate a failure on every attempt"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit JSON log lines"),
    metrics_file: Optional[Path] = typer.Option(
        None, "--metrics-file", help="Write Prometheus metrics here after the run"
    ),
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Print the routing plan without sending requests"
    ),
):
    """Summarize every file under INPUT."""
    configure_logging(level="DEBUG" if verbose else "INFO", json_output=json_logs)

    overrides: Dict[str, Any] = {
        "version": version,
        "prompt_path": prompt_path,
        "concurrency_ceil": concurrency_ceil,
        "inject_fault": inject_fault,
        "verbose": verbose or None,
        "api": {"model": model, "temperature": temperature, "top_k": top_k},
        "timeouts": {
            "connect_timeout_seconds": connect_timeout,
            "request_timeout_seconds": request_timeout,
            "stream_idle_timeout_seconds": stream_idle_timeout,
        },
        "long_channel": {
            "enabled": long_enabled,
            "bytes_threshold": long_bytes,
            "lines_threshold": long_lines,
            "timeout_multiplier": long_multiplier,
            "request_timeout_seconds": long_request_timeout,
            "idle_timeout_seconds": long_idle_timeout,
            "adaptive_idle_enabled": long_adaptive,
            "long_workers": long_workers,
        },
        "rate_limit": {
            "requests_per_second": rate_limit_rps,
            "bytes_per_second": rate_limit_bytes,
        },
        "filters": {
            "skip_extensions": split_extensions(skip_ext),
            "skip_larger_than_mb": skip_large_mb,
        },
    }
    config = load_config(config_path, overrides)
    prompt = load_prompt(config.prompt_path)

    if dry_run:
        runner = BatchRunner(config, api_key="", prompt=prompt)
        runner.validate()
        _display_plan(runner.plan(input_path))
        return

    runner = BatchRunner(config, api_key=load_api_key(), prompt=prompt)
    if config.inject_fault is not None:
        display_warning(f"Fault injection active: {config.inject_fault.value}")

    result = asyncio.run(runner.run(input_path))
    _display_results(result)

    if metrics_file is not None:
        written = write_metrics_file(metrics_file)
        display_info(f"Metrics written to {written}")

    raise typer.Exit(code=result.exit_code)


def _display_plan(plan: BatchPlan) -> None:
    display_success("Dry run: configuration valid.")
    if plan.output_root is not None:
        typer.echo(f"Output root: {plan.output_root}")
    typer.echo(f"{len(plan.items)} file(s) to summarize:")
    for item in plan.items:
        typer.echo(
            f" - [{item.channel.value}] {item.path} "
            f"({item.byte_size} bytes, {item.line_count} lines, "
            f"threshold={item.matched_threshold}, "
            f"request={item.effective_request_timeout:g}s, "
            f"idle={item.effective_idle_timeout:g}s)"
        )
    if plan.skipped:
        display_warning(f"{len(plan.skipped)} file(s) skipped:")
        for skipped in plan.skipped:
            typer.echo(f" - {skipped.path}: {skipped.reason}")


def _display_results(result: BatchResult) -> None:
    typer.echo("")
    if result.all_succeeded:
        typer.secho("Batch completed!", fg=typer.colors.GREEN, bold=True)
    else:
        typer.secho("Batch completed with failures.", fg=typer.colors.YELLOW, bold=True)
    typer.echo(f"  {result.summary_line()}")
    typer.echo(f"  Retries: {result.retries}")
    typer.echo(f"  Duration: {result.duration_seconds:.1f}s")
    if result.output_root is not None:
        typer.echo(f"  Output root: {result.output_root}")

    for err in result.errors:
        display_error(f"  - {err['file']}: {err['error']}")
