"""Tests for CLI commands."""

from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
import structlog
from typer.testing import CliRunner

from pretackler.cli import app
from pretackler.models.work import ItemOutcome, OutcomeStatus
from pretackler.orchestration.result import BatchResult
from pretackler.services.credentials import KEY_ENV, KEY_FILE_ENV

runner = CliRunner()


@pytest.fixture(autouse=True)
def reset_structlog():
    yield
    structlog.reset_defaults()


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    """Working directory with a prompt template and a small source tree."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv(KEY_FILE_ENV, raising=False)
    monkeypatch.delenv(KEY_ENV, raising=False)
    (tmp_path / "prompt_template.md").write_text("Summarize.\n", encoding="utf-8")
    project = tmp_path / "project"
    project.mkdir()
    (project / "small.py").write_text("a = 1\n", encoding="utf-8")
    (project / "large.py").write_text("b = 2\n" * 50, encoding="utf-8")
    return tmp_path


def make_result(failed=0):
    result = BatchResult(output_root=Path("/out"))
    result.add(ItemOutcome(path=Path("ok.py"), status=OutcomeStatus.SUCCEEDED))
    for i in range(failed):
        result.add(ItemOutcome(path=Path(f"bad{i}.py"), status=OutcomeStatus.FAILED, reason="HTTP 400"))
    return result


def test_dry_run_prints_plan(workspace):
    result = runner.invoke(
        app, ["run", "project", "--dry-run", "--long-file-lines-threshold", "10"]
    )

    assert result.exit_code == 0, result.output
    assert "Dry run: configuration valid." in result.output
    assert "[long]" in result.output
    assert "[normal]" in result.output
    assert not (workspace / "project.summaries.v1").exists()


def test_dry_run_needs_no_key(workspace):
    result = runner.invoke(app, ["run", "project", "--dry-run"])
    assert result.exit_code == 0, result.output


def test_missing_key_exits_2(workspace):
    result = runner.invoke(app, ["run", "project"])
    assert result.exit_code == 2
    assert "Configuration Error" in result.output


def test_missing_prompt_exits_2(workspace):
    result = runner.invoke(app, ["run", "project", "--prompt", "nope.md", "--dry-run"])
    assert result.exit_code == 2


def test_invalid_option_value_exits_2(workspace):
    result = runner.invoke(
        app, ["run", "project", "--dry-run", "--long-file-bytes-threshold", "0"]
    )
    assert result.exit_code == 2


def test_invalid_allocation_exits_2(workspace):
    result = runner.invoke(
        app, ["run", "project", "--dry-run", "--concurrency-ceil", "2", "--long-workers", "2"]
    )
    assert result.exit_code == 2


def test_nonexistent_input(workspace):
    result = runner.invoke(app, ["run", "missing_dir"])
    assert result.exit_code == 2


@patch("pretackler.cli.run.BatchRunner")
def test_successful_run_exits_0(mock_runner, workspace, monkeypatch):
    monkeypatch.setenv(KEY_ENV, "sk-test")
    mock_runner.return_value.run = AsyncMock(return_value=make_result())

    result = runner.invoke(app, ["run", "project", "--max-concurrency", "3"])

    assert result.exit_code == 0, result.output
    assert "1 succeeded, 0 failed, 0 skipped" in result.output
    config = mock_runner.call_args.args[0]
    assert config.concurrency_ceil == 3
    assert mock_runner.call_args.kwargs["api_key"] == "sk-test"


@patch("pretackler.cli.run.BatchRunner")
def test_failed_items_exit_1(mock_runner, workspace, monkeypatch):
    monkeypatch.setenv(KEY_ENV, "sk-test")
    mock_runner.return_value.run = AsyncMock(return_value=make_result(failed=1))

    result = runner.invoke(app, ["run", "project"])

    assert result.exit_code == 1
    assert "1 succeeded, 1 failed, 0 skipped" in result.output
    assert "HTTP 400" in result.output


@patch("pretackler.cli.run.BatchRunner")
def test_flags_map_onto_config(mock_runner, workspace, monkeypatch):
    monkeypatch.setenv(KEY_ENV, "sk-test")
    mock_runner.return_value.run = AsyncMock(return_value=make_result())

    result = runner.invoke(
        app,
        [
            "run",
            "project",
            "--version",
            "v3",
            "--skip-ext",
            "png,lock",
            "--skip-ext",
            ".md",
            "--no-long-channel",
            "--long-channel-idle-timeout",
            "0",
            "--rate-limit-rps",
            "2.5",
            "--inject-fault",
            "5xx",
            "--no-long-channel-adaptive-idle",
        ],
    )

    assert result.exit_code == 0, result.output
    config = mock_runner.call_args.args[0]
    assert config.version == "v3"
    assert config.filters.skip_extensions == ["png", "lock", "md"]
    assert config.long_channel.enabled is False
    assert config.long_channel.idle_timeout_seconds == 0
    assert config.long_channel.adaptive_idle_enabled is False
    assert config.rate_limit.requests_per_second == 2.5
    assert config.inject_fault.value == "5xx"


@patch("pretackler.cli.run.BatchRunner")
def test_metrics_file_written(mock_runner, workspace, monkeypatch):
    monkeypatch.setenv(KEY_ENV, "sk-test")
    mock_runner.return_value.run = AsyncMock(return_value=make_result())

    result = runner.invoke(app, ["run", "project", "--metrics-file", "out/metrics.prom"])

    assert result.exit_code == 0, result.output
    assert (workspace / "out" / "metrics.prom").exists()


def test_config_file_used(workspace):
    (workspace / "custom.yaml").write_text("version: v9\n", encoding="utf-8")
    result = runner.invoke(app, ["run", "project", "--config", "custom.yaml", "--dry-run"])
    assert result.exit_code == 0, result.output
    assert "project.summaries.v9" in result.output


def test_validate_success(workspace):
    (workspace / "ok.yaml").write_text("concurrency_ceil: 4\n", encoding="utf-8")
    result = runner.invoke(app, ["validate", "ok.yaml"])
    assert result.exit_code == 0
    assert "Configuration is valid" in result.output


def test_validate_failure(workspace):
    (workspace / "bad.yaml").write_text("retry:\n  max_attempts: 0\n", encoding="utf-8")
    result = runner.invoke(app, ["validate", "bad.yaml"])
    assert result.exit_code == 2
    assert "Configuration Error" in result.output


def test_validate_rejects_zero_long_workers_without_ceiling(workspace):
    (workspace / "zero.yaml").write_text("long_channel:\n  long_workers: 0\n", encoding="utf-8")
    result = runner.invoke(app, ["validate", "zero.yaml"])
    assert result.exit_code == 2
    assert "long_workers" in result.output
