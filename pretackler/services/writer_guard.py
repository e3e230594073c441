"""Crash-safe output writer.

Writes go to a sibling temp file (`<final>.tmp-<random>`) in the same
directory; commit() renames it onto the final path in one step. Any other
exit from the context removes the temp file, so the final path is never
observed half-written.
"""

import asyncio
import os
import secrets
from pathlib import Path
from types import TracebackType
from typing import IO, Optional, Type

import structlog

from pretackler.utils.exceptions import OutputWriteError

logger = structlog.get_logger()

TEMP_MARKER = ".tmp-"


def temp_path_for(final_path: Path) -> Path:
    """Fresh temp sibling for final_path; the suffix differs per call."""
    return final_path.with_name(f"{final_path.name}{TEMP_MARKER}{secrets.token_hex(6)}")


class WriterGuard:
    """Scoped writer for one output artifact.

    Usage:
        with WriterGuard(final_path) as guard:
            guard.write("chunk")
            guard.commit()
    """

    def __init__(self, final_path: Path, encoding: str = "utf-8"):
        self.final_path = Path(final_path)
        self.temp_path = temp_path_for(self.final_path)
        self.encoding = encoding
        self.chars_written = 0
        self.committed = False
        self._file: Optional[IO[str]] = None

    def __enter__(self) -> "WriterGuard":
        try:
            self.final_path.parent.mkdir(parents=True, exist_ok=True)
            self._file = open(self.temp_path, "x", encoding=self.encoding)
        except OSError as e:
            self._cleanup()
            raise OutputWriteError(
                f"cannot create temp file {self.temp_path}: {e}"
            ) from e
        return self

    def write(self, text: str) -> None:
        """Append text and flush it to the temp file."""
        if self._file is None or self.committed:
            raise OutputWriteError(f"writer for {self.final_path} is not open")
        try:
            self._file.write(text)
            self._file.flush()
        except OSError as e:
            raise OutputWriteError(f"write to {self.temp_path} failed: {e}") from e
        self.chars_written += len(text)

    def commit(self) -> Path:
        """Make the temp file visible at the final path atomically."""
        if self._file is None or self.committed:
            raise OutputWriteError(f"writer for {self.final_path} is not open")
        try:
            self._file.flush()
            os.fsync(self._file.fileno())
            self._file.close()
            self._file = None
            os.replace(self.temp_path, self.final_path)
        except OSError as e:
            self._cleanup()
            raise OutputWriteError(
                f"commit of {self.final_path} failed: {e}"
            ) from e

        self.committed = True
        logger.debug(
            "output_committed",
            path=str(self.final_path),
            chars_written=self.chars_written,
        )
        return self.final_path

    async def commit_async(self) -> Path:
        """Run commit() in a worker thread so fsync does not block the loop.

        Once started, the rename is allowed to finish even if the calling
        task is cancelled; the cancellation is re-raised afterwards.
        """
        task = asyncio.ensure_future(asyncio.to_thread(self.commit))
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            await asyncio.wait({task})
            raise

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        if not self.committed:
            self._cleanup()
            logger.debug(
                "output_discarded",
                path=str(self.final_path),
                reason=exc_type.__name__ if exc_type else "not_committed",
            )

    def _cleanup(self) -> None:
        if self._file is not None:
            try:
                self._file.close()
            except OSError:
                logger.warning("temp_close_failed", path=str(self.temp_path))
            self._file = None
        try:
            self.temp_path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("temp_cleanup_failed", path=str(self.temp_path), error=str(e))
