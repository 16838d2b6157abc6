"""Shipment marking and delivery confirmation fixtures."""

from __future__ import annotations

from escrow_spec.config import MAX_TRACKING_LEN
from escrow_spec.errors import ErrorCode
from escrow_spec.state_machine import apply_operation
from escrow_spec.test_accounts import ARBITER, BUYER, SELLER
from escrow_spec.types import EscrowState, EventKind, Operation


# --- mark_as_shipped ---


def test_mark_as_shipped_success(transition_test_group, funded_contract, clock) -> None:
    clock.advance(3_600)
    result = transition_test_group(
        "escrow/mark_as_shipped.json",
        "mark_as_shipped_success",
        funded_contract,
        Operation.MARK_AS_SHIPPED,
        SELLER,
        tracking="1Z999AA10123456784",
    )
    assert result.ok
    assert result.event.kind == EventKind.SHIPPED
    snap = funded_contract.snapshot()
    assert snap.state == EscrowState.AWAITING_INSPECTION
    assert snap.shipment_marked
    assert snap.tracking_number == "1Z999AA10123456784"
    # The inspection window restarts at shipment time.
    assert snap.last_action_timestamp == clock.now
    assert funded_contract.window_deadline == clock.now + 86_400
    assert funded_contract.has_confirmed_shipment(SELLER)
    assert not funded_contract.has_confirmed_shipment(BUYER)


def test_mark_as_shipped_not_seller(transition_test_group, funded_contract) -> None:
    result = transition_test_group(
        "escrow/mark_as_shipped.json",
        "mark_as_shipped_not_seller",
        funded_contract,
        Operation.MARK_AS_SHIPPED,
        BUYER,
        tracking="TRACK",
    )
    assert result.error.code == ErrorCode.NOT_SELLER


def test_mark_as_shipped_unfunded(transition_test_group, make_contract) -> None:
    contract = make_contract()
    result = transition_test_group(
        "escrow/mark_as_shipped.json",
        "mark_as_shipped_unfunded",
        contract,
        Operation.MARK_AS_SHIPPED,
        SELLER,
        tracking="TRACK",
    )
    assert result.error.code == ErrorCode.WRONG_STATE


def test_mark_as_shipped_twice(transition_test_group, shipped_contract) -> None:
    result = transition_test_group(
        "escrow/mark_as_shipped.json",
        "mark_as_shipped_twice",
        shipped_contract,
        Operation.MARK_AS_SHIPPED,
        SELLER,
        tracking="OTHER",
    )
    assert result.error.code == ErrorCode.ALREADY_SHIPPED
    assert shipped_contract.snapshot().tracking_number == "1Z999AA10123456784"


def test_mark_as_shipped_empty_tracking(transition_test_group, funded_contract) -> None:
    result = transition_test_group(
        "escrow/mark_as_shipped.json",
        "mark_as_shipped_empty_tracking",
        funded_contract,
        Operation.MARK_AS_SHIPPED,
        SELLER,
        tracking="  ",
    )
    assert result.error.code == ErrorCode.INVALID_TRACKING
    assert funded_contract.state == EscrowState.AWAITING_DELIVERY


def test_mark_as_shipped_tracking_too_long(funded_contract) -> None:
    result = apply_operation(
        funded_contract, "mark_as_shipped", SELLER, tracking="T" * (MAX_TRACKING_LEN + 1)
    )
    assert result.error.code == ErrorCode.INVALID_TRACKING


# --- confirm_delivery ---


def test_confirm_delivery_success(transition_test_group, shipped_contract, ledger) -> None:
    result = transition_test_group(
        "escrow/confirm_delivery.json",
        "confirm_delivery_success",
        shipped_contract,
        Operation.CONFIRM_DELIVERY,
        BUYER,
    )
    assert result.ok
    assert result.event.payload == {"recipient": SELLER, "amount": 98}
    assert shipped_contract.state == EscrowState.COMPLETE
    assert shipped_contract.balance == 0
    assert shipped_contract.has_confirmed_shipment(BUYER)
    assert ledger.balance_of(SELLER) == 98
    # Platform fee stays in custody.
    assert ledger.balance_of(shipped_contract.custody) == 2


def test_confirm_delivery_before_shipment(transition_test_group, funded_contract) -> None:
    result = transition_test_group(
        "escrow/confirm_delivery.json",
        "confirm_delivery_not_shipped",
        funded_contract,
        Operation.CONFIRM_DELIVERY,
        BUYER,
    )
    assert result.error.code == ErrorCode.NOT_SHIPPED


def test_confirm_delivery_not_buyer(transition_test_group, shipped_contract) -> None:
    result = transition_test_group(
        "escrow/confirm_delivery.json",
        "confirm_delivery_not_buyer",
        shipped_contract,
        Operation.CONFIRM_DELIVERY,
        ARBITER,
    )
    assert result.error.code == ErrorCode.NOT_BUYER


def test_confirm_delivery_after_completion(transition_test_group, shipped_contract) -> None:
    shipped_contract.confirm_delivery(BUYER)
    result = transition_test_group(
        "escrow/confirm_delivery.json",
        "confirm_delivery_twice",
        shipped_contract,
        Operation.CONFIRM_DELIVERY,
        BUYER,
    )
    assert result.error.code == ErrorCode.WRONG_STATE


def test_confirm_delivery_with_empty_balance(shipped_contract, ledger) -> None:
    shipped_contract.create_milestone(BUYER, "All of it", 98)
    shipped_contract.complete_milestone(BUYER, 0)
    transfers = len(ledger.history)
    shipped_contract.confirm_delivery(BUYER)
    assert shipped_contract.state == EscrowState.COMPLETE
    # Nothing left to pay, so no ledger call.
    assert len(ledger.history) == transfers


def test_terminal_escrow_rejects_everything(shipped_contract) -> None:
    shipped_contract.confirm_delivery(BUYER)
    before = shipped_contract.snapshot()
    calls = [
        ("deposit", BUYER, {"amount": 10}),
        ("create_milestone", BUYER, {"description": "late", "payment": 1}),
        ("mark_as_shipped", SELLER, {"tracking": "again"}),
        ("open_dispute", BUYER, {}),
        ("resolve_dispute", ARBITER, {"to_buyer": True, "amount": 1}),
        ("refund_buyer", SELLER, {}),
        ("partial_refund", SELLER, {"amount": 1}),
        ("timeout_release", SELLER, {}),
        ("reclaim_undelivered", BUYER, {}),
        ("return_shipment", BUYER, {}),
    ]
    for op, caller, args in calls:
        result = apply_operation(shipped_contract, op, caller, **args)
        assert not result.ok, op
    assert shipped_contract.snapshot() == before
