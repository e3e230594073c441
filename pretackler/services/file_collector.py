"""Directory enumeration with skip filtering.

Walks the input tree in a stable (sorted) order, measures each regular
file (byte size and line count), and applies the extension and size skip
rules. Symlinks are not followed.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

import structlog

from pretackler.models.config import FilterSettings
from pretackler.models.work import SourceFile
from pretackler.utils.exceptions import ConfigError

logger = structlog.get_logger()

READ_CHUNK = 1024 * 1024


@dataclass
class SkippedFile:
    path: Path
    reason: str


@dataclass
class Enumeration:
    """Files to process, skipped files, and relative directories seen."""

    files: List[SourceFile] = field(default_factory=list)
    skipped: List[SkippedFile] = field(default_factory=list)
    directories: List[Path] = field(default_factory=list)


def count_lines(path: Path) -> int:
    """Number of lines, counting a trailing line without a newline."""
    lines = 0
    last = b""
    with open(path, "rb") as f:
        while True:
            chunk = f.read(READ_CHUNK)
            if not chunk:
                break
            lines += chunk.count(b"\n")
            last = chunk[-1:]
    if last and last != b"\n":
        lines += 1
    return lines


def measure(path: Path, root: Path) -> SourceFile:
    return SourceFile(
        path=path,
        relative_path=path.relative_to(root),
        byte_size=path.stat().st_size,
        line_count=count_lines(path),
    )


class FileCollector:
    """Enumerates input files and applies skip rules."""

    def __init__(self, filters: FilterSettings):
        self.filters = filters

    def skip_reason(self, path: Path, byte_size: int) -> str:
        """Why path is skipped, or an empty string when it is kept."""
        ext = path.suffix.lower().lstrip(".")
        if ext and ext in self.filters.skip_extensions:
            return f"extension .{ext} is skipped"
        limit_mb = self.filters.skip_larger_than_mb
        if limit_mb is not None and byte_size > limit_mb * 1024 * 1024:
            return f"size {byte_size} bytes exceeds {limit_mb} MB"
        return ""

    def collect(self, input_path: Path) -> Enumeration:
        """Enumerate a single file or a directory tree."""
        input_path = Path(input_path)
        result = Enumeration()

        if input_path.is_file():
            self._consider(input_path, input_path.parent, result)
            return result

        if not input_path.is_dir():
            raise ConfigError(f"input is neither a file nor a directory: {input_path}")

        result.directories.append(Path())
        for dirpath, dirnames, filenames in os.walk(input_path, followlinks=False):
            dirnames.sort()
            current = Path(dirpath)
            for dirname in dirnames:
                sub = current / dirname
                if not sub.is_symlink():
                    result.directories.append(sub.relative_to(input_path))
            for filename in sorted(filenames):
                path = current / filename
                if path.is_symlink() or not path.is_file():
                    continue
                self._consider(path, input_path, result)

        logger.info(
            "enumeration_complete",
            input=str(input_path),
            files=len(result.files),
            skipped=len(result.skipped),
            directories=len(result.directories),
        )
        return result

    def _consider(self, path: Path, root: Path, result: Enumeration) -> None:
        byte_size = path.stat().st_size
        reason = self.skip_reason(path, byte_size)
        if reason:
            result.skipped.append(SkippedFile(path=path, reason=reason))
            logger.info("item_skipped", file=str(path), reason=reason)
            return
        result.files.append(measure(path, root))
