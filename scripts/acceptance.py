#!/usr/bin/env python3
"""
acceptance.py - Acceptance runs against a real endpoint

Runs the CLI over a small and a large source tree, then repeats the small
run with each injected fault (429, 5xx, idle). Each run's output goes to
its own log file; a one-line result (duration, exit code, counts) is
printed per scenario.

Usage:
    python scripts/acceptance.py <small_dir> <large_dir> [version]

Requires a key (deepseek_api_key.secret, DEEPSEEK_API_KEY_FILE or
DEEPSEEK_API_KEY) and ./prompt_template.md in the working directory.
"""

import re
import subprocess
import sys
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

SCRIPT_DIR = Path(__file__).parent.resolve()
PROJECT_ROOT = SCRIPT_DIR.parent
LOG_DIR = PROJECT_ROOT / "logs"
PROMPT_FILE = Path("prompt_template.md")
RUN_TIMEOUT_SECONDS = 7200

SUMMARY_PATTERN = re.compile(r"(\d+) succeeded, (\d+) failed, (\d+) skipped")


@dataclass
class Scenario:
    name: str
    args: List[str]


@dataclass
class ScenarioResult:
    name: str
    exit_code: int
    duration_seconds: float
    counts: Optional[Tuple[int, int, int]]
    log_file: Path


def build_scenarios(small: Path, large: Path, version: str = "v1") -> List[Scenario]:
    """The five acceptance runs, in execution order."""
    base = ["--version", version, "--prompt", str(PROMPT_FILE)]
    return [
        Scenario("small", [str(small), *base]),
        Scenario("large", [str(large), *base, "--concurrency-ceil", "32"]),
        Scenario("inject429", [str(small), *base, "--inject-fault", "429", "--verbose"]),
        Scenario("inject5xx", [str(small), *base, "--inject-fault", "5xx", "--verbose"]),
        Scenario(
            "injectidle",
            [str(small), *base, "--inject-fault", "idle", "--stream-idle-timeout", "1", "--verbose"],
        ),
    ]


def parse_summary(output: str) -> Optional[Tuple[int, int, int]]:
    """(succeeded, failed, skipped) from the CLI's final summary line."""
    matches = SUMMARY_PATTERN.findall(output)
    if not matches:
        return None
    succeeded, failed, skipped = matches[-1]
    return int(succeeded), int(failed), int(skipped)


def run_scenario(scenario: Scenario, log_dir: Path = LOG_DIR) -> ScenarioResult:
    log_dir.mkdir(parents=True, exist_ok=True)
    stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_file = log_dir / f"acceptance_{scenario.name}_{stamp}.log"
    cmd = [sys.executable, "-m", "pretackler.cli", "run", *scenario.args]

    print(f"==== {scenario.name}: {' '.join(cmd)}")
    started = time.monotonic()
    try:
        completed = subprocess.run(
            cmd, capture_output=True, text=True, timeout=RUN_TIMEOUT_SECONDS
        )
        exit_code = completed.returncode
        output = completed.stdout + completed.stderr
    except subprocess.TimeoutExpired as e:
        exit_code = -1
        output = f"timed out after {e.timeout}s"
    duration = time.monotonic() - started

    log_file.write_text(output, encoding="utf-8")
    return ScenarioResult(
        name=scenario.name,
        exit_code=exit_code,
        duration_seconds=duration,
        counts=parse_summary(output),
        log_file=log_file,
    )


def format_result(result: ScenarioResult) -> str:
    if result.counts is None:
        counts = "no summary"
    else:
        counts = "succeeded={} failed={} skipped={}".format(*result.counts)
    return (
        f"{result.name}: duration={result.duration_seconds:.0f}s "
        f"exit={result.exit_code} {counts} log={result.log_file}"
    )


def main(argv: List[str]) -> int:
    if len(argv) < 2:
        print(__doc__)
        return 1

    small, large = Path(argv[0]), Path(argv[1])
    version = argv[2] if len(argv) > 2 else "v1"

    for scenario in build_scenarios(small, large, version):
        print(format_result(run_scenario(scenario)))

    print(f"Done. Logs are in {LOG_DIR}")
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
