"""Generate escrow fixtures: transition vectors from pytest, reports from scenarios.

    python tools/fill.py                      # everything into ./fixtures
    python tools/fill.py -k refund --no-scenarios
"""

from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path
from typing import List, Optional

import click

ROOT = Path(__file__).resolve().parent.parent
OUT = ROOT / "fixtures"


def pytest_command(output: Path, select: Optional[str] = None) -> List[str]:
    cmd = [sys.executable, "-m", "pytest", str(ROOT / "tests"), "-q", "--output", str(output)]
    if select:
        cmd += ["-k", select]
    return cmd


def scenario_command(output: Path) -> List[str]:
    return [
        sys.executable,
        str(ROOT / "tools" / "run_scenario.py"),
        "--output",
        str(output / "scenarios"),
    ]


@click.command()
@click.option("--output", default=str(OUT), show_default=True, help="Fixture output directory")
@click.option("-k", "select", default=None, help="Only fill tests matching this pytest expression")
@click.option("--scenarios/--no-scenarios", default=True, help="Also replay bundled scenarios")
def main(output: str, select: Optional[str], scenarios: bool) -> None:
    """Run the test suite with fixture collection, then replay scenarios."""
    out = Path(output)
    env = dict(os.environ)
    env["PYTHONPATH"] = os.pathsep.join([str(ROOT / "src"), str(ROOT)])

    commands = [pytest_command(out, select)]
    if scenarios:
        commands.append(scenario_command(out))

    for cmd in commands:
        click.echo("Running: " + " ".join(cmd))
        code = subprocess.call(cmd, env=env, cwd=str(ROOT))
        if code != 0:
            sys.exit(code)
    click.echo(f"Fixtures written to {out}")


if __name__ == "__main__":
    main()
