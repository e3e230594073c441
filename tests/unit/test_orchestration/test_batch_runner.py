"""Tests for BatchRunner wiring and output layout"""

import asyncio
from pathlib import Path

import pytest

from pretackler.models.config import (
    ChannelSettings,
    FilterSettings,
    PretacklerConfig,
    RetryConfig,
    TimeoutSettings,
)
from pretackler.models.work import Channel
from pretackler.orchestration.batch import BatchRunner, build_output_root, summary_file_name
from pretackler.utils.exceptions import ConfigError, ServerError


@pytest.fixture
def config():
    return PretacklerConfig(
        concurrency_ceil=4,
        retry=RetryConfig(base_delay_seconds=0.0),
        long_channel=ChannelSettings(bytes_threshold=200, lines_threshold=50),
    )


@pytest.fixture
def project(tmp_path):
    root = tmp_path / "project"
    (root / "pkg").mkdir(parents=True)
    for i in range(10):
        (root / f"file{i:02d}.py").write_text(f"x = {i}\n", encoding="utf-8")
    (root / "pkg" / "big.py").write_text("y = 1\n" * 60, encoding="utf-8")
    return root


def all_files(directory):
    return sorted(p for p in Path(directory).rglob("*") if p.is_file())


def temp_files(directory):
    return [p for p in Path(directory).rglob("*") if ".tmp-" in p.name]


class TestNaming:
    def test_summary_file_name(self):
        assert summary_file_name("main.rs", "v2") == "main.rs.summary.v2.md"

    def test_output_root_is_sibling(self, tmp_path):
        root = tmp_path / "project"
        root.mkdir()
        assert build_output_root(root, "v1") == tmp_path.resolve() / "project.summaries.v1"


class TestPlan:
    def test_directory_plan(self, config, project):
        plan = BatchRunner(config, "k", "prompt").plan(project)

        assert plan.output_root == build_output_root(project, "v1")
        assert len(plan.items) == 11
        big = next(i for i in plan.items if i.path.name == "big.py")
        assert big.channel is Channel.LONG
        assert big.output_path == plan.output_root / "pkg" / "big.py.summary.v1.md"
        assert not plan.output_root.exists()

    def test_single_file_plan_writes_sibling(self, config, project):
        plan = BatchRunner(config, "k", "prompt").plan(project / "file01.py")

        assert plan.output_root is None
        assert [i.output_path for i in plan.items] == [project / "file01.py.summary.v1.md"]

    def test_skipped_files_in_plan(self, project):
        config = PretacklerConfig(filters=FilterSettings(skip_extensions=["py"]))
        plan = BatchRunner(config, "k", "prompt").plan(project)
        assert plan.items == []
        assert len(plan.skipped) == 11


class TestRun:
    @pytest.mark.asyncio
    async def test_one_permanent_failure_in_ten(self, config, tmp_path, scripted_client):
        root = tmp_path / "ten"
        root.mkdir()
        for i in range(10):
            (root / f"item{i:02d}.py").write_text(f"v = {i}\n", encoding="utf-8")
        failing = [ServerError("HTTP 503", status=503)] * 5
        client = scripted_client({"item02.py": failing})

        result = await BatchRunner(config, "k", "prompt", client=client).run(root)

        assert result.summary_line() == "9 succeeded, 1 failed, 0 skipped"
        assert result.exit_code == 1
        assert result.retries == 4
        assert client.requests_sent == 9 + 5
        assert result.errors[0]["file"].endswith("item02.py")
        outputs = all_files(result.output_root)
        assert len(outputs) == 9
        assert not (result.output_root / "item02.py.summary.v1.md").exists()
        assert temp_files(tmp_path) == []

    @pytest.mark.asyncio
    async def test_one_request_per_item_attempt(self, config, project, scripted_client):
        client = scripted_client()

        result = await BatchRunner(config, "k", "prompt", client=client).run(project)

        assert result.all_succeeded
        assert client.requests_sent == 11
        assert set(client.requests_by_file.values()) == {1}
        assert sum(o.attempts for o in result.outcomes) == client.requests_sent

    @pytest.mark.asyncio
    async def test_mirrors_tree(self, config, project, scripted_client):
        result = await BatchRunner(config, "k", "prompt", client=scripted_client()).run(project)

        out = result.output_root
        assert (out / "file00.py.summary.v1.md").read_text(encoding="utf-8").startswith("# file00.py")
        assert (out / "pkg" / "big.py.summary.v1.md").exists()

    @pytest.mark.asyncio
    async def test_rerun_is_idempotent(self, config, project, scripted_client):
        first = await BatchRunner(config, "k", "prompt", client=scripted_client()).run(project)
        snapshot = {p: p.read_text(encoding="utf-8") for p in all_files(first.output_root)}

        second = await BatchRunner(config, "k", "prompt", client=scripted_client()).run(project)

        assert second.output_root == first.output_root
        assert {p: p.read_text(encoding="utf-8") for p in all_files(second.output_root)} == snapshot
        assert temp_files(project.parent) == []
        # Inputs are never touched
        assert len(all_files(project)) == 11

    @pytest.mark.asyncio
    async def test_single_file_run(self, config, project, scripted_client):
        result = await BatchRunner(config, "k", "prompt", client=scripted_client()).run(
            project / "file03.py"
        )
        assert result.succeeded == 1
        assert (project / "file03.py.summary.v1.md").exists()

    @pytest.mark.asyncio
    async def test_skipped_counted(self, project, scripted_client):
        config = PretacklerConfig(
            concurrency_ceil=2, filters=FilterSettings(skip_extensions=["py"])
        )
        client = scripted_client()
        (project / "notes.txt").write_text("hello\n", encoding="utf-8")

        result = await BatchRunner(config, "k", "prompt", client=client).run(project)

        assert result.summary_line() == "1 succeeded, 0 failed, 11 skipped"
        assert result.exit_code == 0

    @pytest.mark.asyncio
    async def test_empty_directory(self, config, tmp_path, scripted_client):
        empty = tmp_path / "empty"
        empty.mkdir()
        client = scripted_client()

        result = await BatchRunner(config, "k", "prompt", client=client).run(empty)

        assert result.total == 0
        assert result.exit_code == 0
        assert client.entered == 0

    @pytest.mark.asyncio
    async def test_invalid_allocation_rejected_before_sending(self, project, scripted_client):
        config = PretacklerConfig(
            concurrency_ceil=2, long_channel=ChannelSettings(long_workers=2)
        )
        client = scripted_client()

        with pytest.raises(ConfigError):
            await BatchRunner(config, "k", "prompt", client=client).run(project)
        assert client.requests_sent == 0

    @pytest.mark.asyncio
    async def test_interrupted_run_leaves_no_partial_files(self, project, scripted_client):
        config = PretacklerConfig(
            concurrency_ceil=2,
            timeouts=TimeoutSettings(request_timeout_seconds=0, stream_idle_timeout_seconds=0),
        )
        stalled = [b'data: {"choices":[{"delta":{"content":"partial"}}]}\n', 30.0]
        client = scripted_client({f"file{i:02d}.py": [stalled] for i in range(10)})
        runner = BatchRunner(config, "k", "prompt", client=client)

        task = asyncio.create_task(runner.run(project))
        while client.requests_sent < 2:
            await asyncio.sleep(0.01)
        await asyncio.sleep(0.01)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        output_root = build_output_root(project, "v1")
        assert temp_files(output_root) == []
        assert all_files(output_root) == []


class TestLongWorkersValidation:
    @pytest.mark.parametrize("ceiling", [None, 4])
    def test_zero_long_workers_rejected_with_or_without_ceiling(self, ceiling):
        config = PretacklerConfig(
            concurrency_ceil=ceiling, long_channel=ChannelSettings(long_workers=0)
        )
        with pytest.raises(ConfigError, match="long_workers"):
            BatchRunner(config, "k", "prompt").validate()

    def test_zero_long_workers_allowed_when_channel_disabled(self):
        config = PretacklerConfig(long_channel=ChannelSettings(enabled=False, long_workers=0))
        BatchRunner(config, "k", "prompt").validate()

    @pytest.mark.asyncio
    async def test_zero_long_workers_rejected_before_sending(self, project, scripted_client):
        config = PretacklerConfig(long_channel=ChannelSettings(long_workers=0))
        client = scripted_client()

        with pytest.raises(ConfigError):
            await BatchRunner(config, "k", "prompt", client=client).run(project)
        assert client.requests_sent == 0
        assert not build_output_root(project, "v1").exists()
