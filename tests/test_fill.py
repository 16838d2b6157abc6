"""Fixture generation driver."""

from __future__ import annotations

import os
from pathlib import Path

import pytest
from click.testing import CliRunner

from tools import fill


@pytest.fixture
def calls(monkeypatch: pytest.MonkeyPatch) -> list:
    recorded = []

    def fake_call(cmd, env=None, cwd=None):
        recorded.append((cmd, env, cwd))
        return 0

    monkeypatch.setattr(fill.subprocess, "call", fake_call)
    return recorded


def test_runs_tests_then_scenarios(tmp_path: Path, calls: list) -> None:
    result = CliRunner().invoke(fill.main, ["--output", str(tmp_path)])
    assert result.exit_code == 0, result.output
    assert [cmd for cmd, _, _ in calls] == [
        fill.pytest_command(tmp_path),
        fill.scenario_command(tmp_path),
    ]
    assert f"Fixtures written to {tmp_path}" in result.output

    _, env, cwd = calls[0]
    assert cwd == str(fill.ROOT)
    assert env["PYTHONPATH"] == os.pathsep.join([str(fill.ROOT / "src"), str(fill.ROOT)])


def test_selection_and_no_scenarios(tmp_path: Path, calls: list) -> None:
    result = CliRunner().invoke(
        fill.main, ["--output", str(tmp_path), "-k", "refund", "--no-scenarios"]
    )
    assert result.exit_code == 0, result.output
    assert len(calls) == 1
    cmd = calls[0][0]
    assert cmd[-2:] == ["-k", "refund"]
    assert cmd[cmd.index("--output") + 1] == str(tmp_path)


def test_failing_step_stops_with_its_exit_code(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    recorded = []

    def failing_call(cmd, env=None, cwd=None):
        recorded.append(cmd)
        return 3

    monkeypatch.setattr(fill.subprocess, "call", failing_call)
    result = CliRunner().invoke(fill.main, ["--output", str(tmp_path)])
    assert result.exit_code == 3
    assert len(recorded) == 1
    assert "Fixtures written" not in result.output


def test_scenario_reports_go_under_output(tmp_path: Path) -> None:
    cmd = fill.scenario_command(tmp_path)
    assert cmd[1].endswith("run_scenario.py")
    assert cmd[-2:] == ["--output", str(tmp_path / "scenarios")]
