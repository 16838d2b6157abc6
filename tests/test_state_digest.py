"""Escrow state digest."""

from __future__ import annotations

import copy

from escrow_spec.state_digest import compute_state_digest
from escrow_spec.state_machine import apply_operation
from escrow_spec.test_accounts import BUYER, CAROL
from tools.fixtures_io import snapshot_to_json


def test_digest_is_deterministic(funded_contract) -> None:
    snap = snapshot_to_json(funded_contract.snapshot())
    digest = compute_state_digest(snap)
    assert len(digest) == 64
    assert digest == compute_state_digest(copy.deepcopy(snap))


def test_digest_tracks_every_transition(make_contract, clock) -> None:
    contract = make_contract()
    seen = {compute_state_digest(snapshot_to_json(contract.snapshot()))}
    contract.deposit(BUYER, 100)
    seen.add(compute_state_digest(snapshot_to_json(contract.snapshot())))
    contract.create_milestone(BUYER, "Design", 10)
    seen.add(compute_state_digest(snapshot_to_json(contract.snapshot())))
    assert len(seen) == 3


def test_digest_sensitive_to_milestone_fields(funded_contract) -> None:
    funded_contract.create_milestone(BUYER, "Design", 10)
    snap = snapshot_to_json(funded_contract.snapshot())
    base = compute_state_digest(snap)

    renamed = copy.deepcopy(snap)
    renamed["milestones"][0]["description"] = "Desigm"
    repriced = copy.deepcopy(snap)
    repriced["milestones"][0]["payment"] = 11
    done = copy.deepcopy(snap)
    done["milestones"][0]["completed"] = True

    digests = {base, *(compute_state_digest(s) for s in (renamed, repriced, done))}
    assert len(digests) == 4


def test_failed_operation_keeps_digest(funded_contract) -> None:
    before = compute_state_digest(snapshot_to_json(funded_contract.snapshot()))
    result = apply_operation(funded_contract, "partial_refund", CAROL, amount=10)
    assert not result.ok
    result = apply_operation(funded_contract, "no_such_operation", BUYER)
    assert not result.ok
    assert compute_state_digest(snapshot_to_json(funded_contract.snapshot())) == before
