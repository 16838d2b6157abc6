#!/usr/bin/env python3
"""
Escrow Scenario Runner

Replays YAML/JSON escrow scenarios against the reference state machine and
an in-memory ledger, checking per-step outcomes, value conservation and the
final state.
"""

from __future__ import annotations

import glob
import json
import logging
import os
import sys
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import click

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT / "src"))
sys.path.insert(0, str(ROOT))

from escrow_spec.clock import ManualClock  # noqa: E402
from escrow_spec.config import EscrowDefaults  # noqa: E402
from escrow_spec.errors import EscrowError  # noqa: E402
from escrow_spec.ledger import InMemoryLedger  # noqa: E402
from escrow_spec.state_digest import compute_state_digest  # noqa: E402
from escrow_spec.state_machine import EscrowContract, apply_operation  # noqa: E402
from escrow_spec.types import EscrowState  # noqa: E402
from tools.fixtures_io import (  # noqa: E402
    event_to_json,
    load_scenario,
    party,
    snapshot_to_json,
    terms_from_json,
)
from tools.yaml_dump import write_yaml  # noqa: E402

logger = logging.getLogger(__name__)

DEFAULT_SCENARIO_DIR = ROOT / "scenarios"


@dataclass
class StepResult:
    index: int
    op: str
    actor: str
    ok: bool
    error: Optional[str] = None
    expected_error: Optional[str] = None
    event: Optional[Dict[str, Any]] = None

    @property
    def passed(self) -> bool:
        return self.error == self.expected_error


@dataclass
class ScenarioResult:
    name: str
    passed: bool
    execution_time_ms: float
    steps: List[StepResult] = field(default_factory=list)
    failures: List[str] = field(default_factory=list)
    final_state: Optional[Dict[str, Any]] = None
    state_digest: Optional[str] = None


class ScenarioRunner:
    """Runs one scenario mapping at a time."""

    def __init__(self, defaults: Optional[EscrowDefaults] = None):
        self.defaults = defaults or EscrowDefaults()

    def run(self, scenario: Dict[str, Any]) -> ScenarioResult:
        name = scenario.get("name", "unnamed")
        start_time = time.time()
        failures: List[str] = []
        steps: List[StepResult] = []

        try:
            contract, ledger, clock = self._setup(scenario)
        except (EscrowError, ValueError) as e:
            return ScenarioResult(
                name=name,
                passed=False,
                execution_time_ms=(time.time() - start_time) * 1000,
                failures=[f"setup: {e}"],
            )

        for index, step in enumerate(scenario.get("steps", [])):
            try:
                self._advance_clock(clock, contract.created_at, step)
            except ValueError as e:
                failures.append(f"step {index}: {e}")
                break
            actor = step.get("actor", "buyer")
            try:
                result = apply_operation(
                    contract, step["op"], party(actor), **dict(step.get("args") or {})
                )
            except TypeError as e:
                failures.append(f"step {index} ({step['op']}): bad arguments: {e}")
                break
            step_result = StepResult(
                index=index,
                op=step["op"],
                actor=actor,
                ok=result.ok,
                error=result.error.code.name if result.error else None,
                expected_error=step.get("expect_error"),
                event=event_to_json(result.event) if result.event else None,
            )
            steps.append(step_result)
            if not step_result.passed:
                failures.append(
                    f"step {index} ({step_result.op}): expected "
                    f"{step_result.expected_error or 'success'}, got {step_result.error or 'success'}"
                )
            snap = contract.snapshot()
            if snap.total_released + snap.balance != snap.net_deposited:
                failures.append(
                    f"step {index}: value not conserved: released {snap.total_released} + "
                    f"balance {snap.balance} != net deposits {snap.net_deposited}"
                )

        failures.extend(self._check_expected(scenario.get("expected") or {}, contract, ledger))

        final_state = snapshot_to_json(contract.snapshot())
        return ScenarioResult(
            name=name,
            passed=not failures,
            execution_time_ms=(time.time() - start_time) * 1000,
            steps=steps,
            failures=failures,
            final_state=final_state,
            state_digest=compute_state_digest(final_state),
        )

    def _setup(self, scenario: Dict[str, Any]):
        clock = ManualClock(int(scenario.get("start", 0)))
        ledger = InMemoryLedger()
        for name, amount in (scenario.get("balances") or {}).items():
            ledger.mint(party(name), int(amount))
        terms = terms_from_json(scenario.get("terms") or {}, self.defaults)
        contract = EscrowContract(terms, ledger, clock, nonce=int(scenario.get("nonce", 0)))
        for name, amount in (scenario.get("allowances") or {}).items():
            ledger.approve(party(name), contract.custody, int(amount))
        return contract, ledger, clock

    @staticmethod
    def _advance_clock(clock: ManualClock, created_at: int, step: Dict[str, Any]) -> None:
        if "at" in step:
            clock.set(created_at + int(step["at"]))
        elif "advance" in step:
            clock.advance(int(step["advance"]))

    @staticmethod
    def _check_expected(
        expected: Dict[str, Any], contract: EscrowContract, ledger: InMemoryLedger
    ) -> List[str]:
        failures = []
        if "state" in expected:
            try:
                want = EscrowState.from_label(expected["state"])
            except ValueError as e:
                failures.append(f"state: {e}")
            else:
                if contract.state != want:
                    failures.append(f"state: expected {want.label}, got {contract.state_label}")
        if "balance" in expected and contract.balance != int(expected["balance"]):
            failures.append(f"balance: expected {expected['balance']}, got {contract.balance}")
        if "milestones" in expected and contract.milestone_count != int(expected["milestones"]):
            failures.append(
                f"milestones: expected {expected['milestones']}, got {contract.milestone_count}"
            )
        for name, amount in (expected.get("balances") or {}).items():
            held = ledger.balance_of(contract.custody if name == "custody" else party(name))
            if held != int(amount):
                failures.append(f"ledger balance of {name}: expected {amount}, got {held}")
        return failures


def find_scenario_files(scenario_dir: str) -> List[str]:
    """Find all scenario files in directory."""
    patterns = [
        os.path.join(scenario_dir, "**", "*.yaml"),
        os.path.join(scenario_dir, "**", "*.yml"),
        os.path.join(scenario_dir, "**", "*.json"),
    ]

    files = []
    for pattern in patterns:
        files.extend(glob.glob(pattern, recursive=True))

    return sorted(files)


def build_report(results: List[ScenarioResult]) -> Dict[str, Any]:
    return {
        "total": len(results),
        "passed": sum(1 for r in results if r.passed),
        "failed": sum(1 for r in results if not r.passed),
        "scenarios": [
            {
                **asdict(r),
                "steps": [{**asdict(s), "passed": s.passed} for s in r.steps],
            }
            for r in results
        ],
    }


@click.command()
@click.option(
    "--scenarios",
    default=None,
    help="Path to a scenario directory or a single scenario file",
)
@click.option(
    "--output",
    default=None,
    help="Directory to write scenario-report.json and scenario-report.yaml",
)
@click.option(
    "--verbose",
    is_flag=True,
    help="Enable verbose output",
)
@click.option(
    "--stop-on-failure",
    is_flag=True,
    help="Stop on first scenario failure",
)
def main(
    scenarios: Optional[str],
    output: Optional[str],
    verbose: bool,
    stop_on_failure: bool,
) -> None:
    """Replay escrow scenarios."""

    defaults = EscrowDefaults.from_env()
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, defaults.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
    )

    scenario_dir = scenarios or str(DEFAULT_SCENARIO_DIR)
    if os.path.isfile(scenario_dir):
        scenario_files = [scenario_dir]
    else:
        scenario_files = find_scenario_files(scenario_dir)

    if not scenario_files:
        logger.error(f"No scenario files found in {scenario_dir}")
        sys.exit(1)

    logger.info(f"Found {len(scenario_files)} scenario files")

    runner = ScenarioRunner(defaults)
    results: List[ScenarioResult] = []
    for path in scenario_files:
        try:
            scenario = load_scenario(Path(path))
        except ValueError as e:
            logger.error(f"Cannot load {path}: {e}")
            results.append(ScenarioResult(name=Path(path).stem, passed=False,
                                          execution_time_ms=0.0, failures=[str(e)]))
            if stop_on_failure:
                break
            continue

        result = runner.run(scenario)
        results.append(result)
        status = "PASS" if result.passed else "FAIL"
        logger.info(f"  [{status}] {result.name}")
        for failure in result.failures:
            logger.info(f"      {failure}")
        if not result.passed and stop_on_failure:
            break

    report = build_report(results)
    if output:
        out = Path(output)
        out.mkdir(parents=True, exist_ok=True)
        (out / "scenario-report.json").write_text(json.dumps(report, indent=2))
        write_yaml(out / "scenario-report.yaml", report)

    click.echo(f"{report['passed']}/{report['total']} scenarios passed")
    sys.exit(0 if report["failed"] == 0 else 1)


if __name__ == "__main__":
    main()
