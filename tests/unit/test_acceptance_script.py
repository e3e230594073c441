"""Tests for the acceptance runner script"""

import importlib.util
from pathlib import Path

import pytest

SCRIPT = Path(__file__).resolve().parents[2] / "scripts" / "acceptance.py"


@pytest.fixture(scope="module")
def acceptance():
    spec = importlib.util.spec_from_file_location("acceptance", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_five_scenarios_in_order(acceptance):
    scenarios = acceptance.build_scenarios(Path("small"), Path("large"), "v2")
    assert [s.name for s in scenarios] == [
        "small",
        "large",
        "inject429",
        "inject5xx",
        "injectidle",
    ]
    assert scenarios[1].args[0] == "large"
    assert "--concurrency-ceil" in scenarios[1].args
    assert all(s.args[1:3] == ["--version", "v2"] for s in scenarios)
    idle = scenarios[-1].args
    assert idle[idle.index("--stream-idle-timeout") + 1] == "1"


def test_parse_summary_takes_last_line(acceptance):
    output = "noise\n  3 succeeded, 1 failed, 0 skipped\nmore\n  9 succeeded, 1 failed, 2 skipped\n"
    assert acceptance.parse_summary(output) == (9, 1, 2)


def test_parse_summary_missing(acceptance):
    assert acceptance.parse_summary("Configuration Error: no key") is None


def test_format_result(acceptance, tmp_path):
    result = acceptance.ScenarioResult(
        name="small",
        exit_code=1,
        duration_seconds=12.4,
        counts=(9, 1, 0),
        log_file=tmp_path / "x.log",
    )
    line = acceptance.format_result(result)
    assert line.startswith("small: duration=12s exit=1 succeeded=9 failed=1 skipped=0")
