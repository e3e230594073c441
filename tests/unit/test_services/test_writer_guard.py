"""Tests for atomic output writing"""

import asyncio
import threading
from unittest.mock import patch

import pytest

from pretackler.services.writer_guard import TEMP_MARKER, WriterGuard, temp_path_for
from pretackler.utils.exceptions import OutputWriteError


def leftovers(directory):
    return [p for p in directory.iterdir() if TEMP_MARKER in p.name]


class TestTempPath:
    def test_same_directory_with_marker(self, tmp_path):
        final = tmp_path / "a.py.summary.v1.md"
        temp = temp_path_for(final)
        assert temp.parent == tmp_path
        assert temp.name.startswith(f"{final.name}{TEMP_MARKER}")
        assert len(temp.name) == len(final.name) + len(TEMP_MARKER) + 12

    def test_unique_per_guard(self, tmp_path):
        final = tmp_path / "out.md"
        names = {WriterGuard(final).temp_path for _ in range(50)}
        assert len(names) == 50


class TestCommit:
    def test_commit_publishes_final_file(self, tmp_path):
        final = tmp_path / "nested" / "out.md"
        with WriterGuard(final) as guard:
            guard.write("hello ")
            guard.write("world")
            assert guard.temp_path.exists()
            assert not final.exists()
            guard.commit()

        assert final.read_text(encoding="utf-8") == "hello world"
        assert guard.chars_written == 11
        assert leftovers(final.parent) == []

    def test_commit_replaces_existing_artifact(self, tmp_path):
        final = tmp_path / "out.md"
        final.write_text("stale", encoding="utf-8")
        with WriterGuard(final) as guard:
            guard.write("fresh")
            guard.commit()
        assert final.read_text(encoding="utf-8") == "fresh"

    def test_write_after_commit_rejected(self, tmp_path):
        with WriterGuard(tmp_path / "out.md") as guard:
            guard.commit()
            with pytest.raises(OutputWriteError):
                guard.write("late")


class TestDiscard:
    def test_interrupted_write_leaves_nothing(self, tmp_path):
        final = tmp_path / "out.md"
        with pytest.raises(RuntimeError):
            with WriterGuard(final) as guard:
                guard.write("partial")
                raise RuntimeError("connection dropped")

        assert not final.exists()
        assert leftovers(tmp_path) == []

    def test_drop_without_commit_removes_temp(self, tmp_path):
        final = tmp_path / "out.md"
        with WriterGuard(final) as guard:
            guard.write("partial")
        assert not final.exists()
        assert not guard.temp_path.exists()

    def test_failed_attempt_keeps_previous_artifact(self, tmp_path):
        final = tmp_path / "out.md"
        final.write_text("previous run", encoding="utf-8")
        with pytest.raises(RuntimeError):
            with WriterGuard(final) as guard:
                guard.write("new partial")
                raise RuntimeError("idle timeout")
        assert final.read_text(encoding="utf-8") == "previous run"

    def test_unwritable_parent_raises_output_error(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x", encoding="utf-8")
        with pytest.raises(OutputWriteError):
            with WriterGuard(blocker / "out.md"):
                pass


class TestCommitAsync:
    @pytest.mark.asyncio
    async def test_commit_runs_off_the_event_loop(self, tmp_path):
        final = tmp_path / "out.md"
        loop_thread = threading.get_ident()
        commit_threads = []

        def fake_fsync(fd):
            commit_threads.append(threading.get_ident())

        with patch("pretackler.services.writer_guard.os.fsync", side_effect=fake_fsync):
            with WriterGuard(final) as guard:
                guard.write("body")
                assert await guard.commit_async() == final

        assert final.read_text(encoding="utf-8") == "body"
        assert commit_threads and commit_threads[0] != loop_thread
        assert leftovers(tmp_path) == []

    @pytest.mark.asyncio
    async def test_cancel_during_commit_lets_rename_finish(self, tmp_path):
        final = tmp_path / "out.md"
        entered = threading.Event()
        release = threading.Event()

        def slow_fsync(fd):
            entered.set()
            release.wait(timeout=5)

        async def write_and_commit():
            with WriterGuard(final) as guard:
                guard.write("complete")
                await guard.commit_async()

        with patch("pretackler.services.writer_guard.os.fsync", side_effect=slow_fsync):
            task = asyncio.create_task(write_and_commit())
            while not entered.is_set():
                await asyncio.sleep(0.001)
            task.cancel()
            await asyncio.sleep(0.01)
            assert not task.done()
            release.set()
            with pytest.raises(asyncio.CancelledError):
                await task

        assert final.read_text(encoding="utf-8") == "complete"
        assert leftovers(tmp_path) == []
