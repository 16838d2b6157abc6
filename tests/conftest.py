"""Pytest fixtures and hooks to generate escrow transition fixtures."""

from __future__ import annotations

import json
from dataclasses import replace
from pathlib import Path
from typing import Any, Callable

import pytest

from escrow_spec.clock import ManualClock
from escrow_spec.ledger import InMemoryLedger
from escrow_spec.state_machine import EscrowContract, TransitionResult, apply_operation
from escrow_spec.test_accounts import ARBITER, BUYER, SELLER
from escrow_spec.types import EscrowTerms, Operation
from tools.fixtures_io import event_to_json, snapshot_to_json

START = 1_700_000_000
BUYER_FUNDS = 10_000
DEPOSIT = 100

BASE_TERMS = EscrowTerms(
    buyer=BUYER,
    seller=SELLER,
    arbiter=ARBITER,
    escrow_fee_rate=2,
    return_fee_rate=5,
    dispute_time_limit=86_400,
)

_TRANSITION_CASES: dict[str, list[dict[str, Any]]] = {}


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--output",
        action="store",
        default=None,
        help="Output directory for generated fixtures",
    )


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(START)


@pytest.fixture
def ledger() -> InMemoryLedger:
    return InMemoryLedger({BUYER: BUYER_FUNDS})


@pytest.fixture
def make_contract(ledger: InMemoryLedger, clock: ManualClock) -> Callable[..., EscrowContract]:
    """Build a contract with the buyer's allowance already granted."""

    def _make_contract(**overrides: Any) -> EscrowContract:
        contract = EscrowContract(replace(BASE_TERMS, **overrides), ledger, clock)
        ledger.approve(BUYER, contract.custody, BUYER_FUNDS)
        return contract

    return _make_contract


@pytest.fixture
def funded_contract(make_contract: Callable[..., EscrowContract]) -> EscrowContract:
    """Deposited 100 at 2% fee: balance 98, AwaitingDelivery."""
    contract = make_contract()
    contract.deposit(BUYER, DEPOSIT)
    return contract


@pytest.fixture
def shipped_contract(funded_contract: EscrowContract, clock: ManualClock) -> EscrowContract:
    """Shipped 60s after deposit: AwaitingInspection."""
    clock.advance(60)
    funded_contract.mark_as_shipped(SELLER, "1Z999AA10123456784")
    return funded_contract


@pytest.fixture
def transition_test_group() -> Callable[..., TransitionResult]:
    """Apply one operation and collect the case under a specific fixture path."""

    def _transition_test_group(
        rel_path: str,
        name: str,
        contract: EscrowContract,
        operation: Operation,
        caller: bytes,
        **args: Any,
    ) -> TransitionResult:
        pre_state = snapshot_to_json(contract.snapshot())
        result = apply_operation(contract, operation, caller, **args)
        _TRANSITION_CASES.setdefault(rel_path, []).append(
            {
                "name": name,
                "pre_state": pre_state,
                "operation": {
                    "op": operation.value,
                    "caller": caller.hex(),
                    "args": args,
                },
                "expected": {
                    "ok": result.ok,
                    "error": result.error.code.name if result.error else None,
                    "event": event_to_json(result.event) if result.event else None,
                    "post_state": snapshot_to_json(contract.snapshot()),
                },
            }
        )
        return result

    return _transition_test_group


def pytest_sessionfinish(session: pytest.Session, exitstatus: int) -> None:
    output_dir = session.config.getoption("--output")
    if not output_dir:
        return

    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)

    for rel_path, cases in _TRANSITION_CASES.items():
        if not cases:
            continue
        target = out / rel_path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(json.dumps({"cases": cases}, indent=2))
