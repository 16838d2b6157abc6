"""Escrow state machine: guarded transitions over a single escrowed balance.

Every mutating operation runs in three phases:

1. checks: caller, state, inputs, arithmetic, timing, pre-authorization.
   Nothing is mutated until all of them pass.
2. effects: balance, state, flags, milestones and the event log are updated.
3. interaction: at most one ledger call. Operations that pay two parties use
   the ledger's all-or-nothing `transfer_batch`. If the call fails or raises,
   the record is restored from the copy taken before the effects and the
   operation raises `TransferError`.

Each instance also carries a re-entrancy guard, so a ledger hook that calls
back into any mutating operation while phase 3 is in flight fails fast.

Failed-call semantics: the snapshot after a failed call equals the snapshot
before it.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Callable, Iterator, List, Optional, Sequence, Tuple, Union

from blake3 import blake3

from .clock import SystemClock
from .config import (
    IDENTITY_LEN,
    MAX_DISPUTE_TIME_LIMIT,
    MAX_TRACKING_LEN,
    MIN_DISPUTE_TIME_LIMIT,
    NULL_IDENTITY,
    U256_MAX,
)
from .errors import ErrorCode, EscrowError, err
from .fees import (
    compute_net_deposit,
    compute_refund_split,
    compute_return_split,
    require_rate,
)
from .ledger import LedgerAdapter
from .milestones import MilestoneRegistry
from .types import (
    MILESTONE_STATES,
    EscrowEvent,
    EscrowSnapshot,
    EscrowState,
    EscrowTerms,
    EventKind,
    Milestone,
    Operation,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], int]

_REFUNDABLE_STATES = frozenset({EscrowState.AWAITING_DELIVERY, EscrowState.AWAITING_INSPECTION})
_PRE_TERMINAL_STATES = frozenset({
    EscrowState.AWAITING_PAYMENT,
    EscrowState.AWAITING_DELIVERY,
    EscrowState.AWAITING_INSPECTION,
    EscrowState.DISPUTED,
})


@dataclass
class EscrowRecord:
    """Mutable escrow fields. Owned exclusively by one `EscrowContract`."""
    state: EscrowState = EscrowState.AWAITING_PAYMENT
    balance: int = 0
    funded: bool = False
    last_action_timestamp: int = 0
    shipment_marked: bool = False
    delivery_confirmed: bool = False
    tracking_number: str = ""
    dispute_opened_at: Optional[int] = None
    milestones: MilestoneRegistry = field(default_factory=MilestoneRegistry)
    total_deposited: int = 0
    total_released: int = 0
    retained_fees: int = 0
    events: List[EscrowEvent] = field(default_factory=list)


class TransitionResult:
    """Thin wrapper for operation results."""

    def __init__(
        self,
        ok: bool,
        error: Optional[EscrowError] = None,
        event: Optional[EscrowEvent] = None,
    ):
        self.ok = ok
        self.error = error
        self.event = event

    @classmethod
    def success(cls, event: EscrowEvent) -> "TransitionResult":
        return cls(True, None, event)

    @classmethod
    def failure(cls, error: EscrowError) -> "TransitionResult":
        return cls(False, error, None)


def derive_escrow_id(terms: EscrowTerms, created_at: int, nonce: int = 0) -> bytes:
    buf = bytearray()
    buf += terms.buyer
    buf += terms.seller
    buf += terms.arbiter
    buf += created_at.to_bytes(8, "big")
    buf += nonce.to_bytes(8, "big")
    return blake3(buf).digest()


def _require_identity(identity: bytes, role: str) -> None:
    if not isinstance(identity, bytes) or len(identity) != IDENTITY_LEN:
        raise err(ErrorCode.INVALID_IDENTITY, f"{role} must be a {IDENTITY_LEN}-byte identity")
    if identity == NULL_IDENTITY:
        raise err(ErrorCode.INVALID_IDENTITY, f"{role} must not be the null identity")


def verify_terms(terms: EscrowTerms) -> None:
    _require_identity(terms.buyer, "buyer")
    _require_identity(terms.seller, "seller")
    _require_identity(terms.arbiter, "arbiter")
    if terms.buyer == terms.seller:
        raise err(ErrorCode.SELF_OPERATION, "buyer cannot be seller")
    if terms.arbiter in (terms.buyer, terms.seller):
        raise err(ErrorCode.SELF_OPERATION, "arbiter must be independent of buyer and seller")

    require_rate(terms.escrow_fee_rate)
    require_rate(terms.return_fee_rate)

    limit = terms.dispute_time_limit
    if isinstance(limit, bool) or not isinstance(limit, int):
        raise err(ErrorCode.INVALID_TIME_LIMIT, "dispute_time_limit must be an integer")
    if limit < MIN_DISPUTE_TIME_LIMIT or limit > MAX_DISPUTE_TIME_LIMIT:
        raise err(ErrorCode.INVALID_TIME_LIMIT, "dispute_time_limit out of range")


def _require_positive_amount(amount: int, what: str) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise err(ErrorCode.INVALID_AMOUNT, f"{what} must be an integer")
    if amount <= 0:
        raise err(ErrorCode.INVALID_AMOUNT, f"{what} must be > 0")
    if amount > U256_MAX:
        raise err(ErrorCode.OVERFLOW, f"{what} exceeds uint256")


class EscrowContract:
    """Three-party escrow over one fungible balance.

    The buyer deploys the contract (supplies the terms) and funds it once.
    `custody` is the ledger account holding the escrowed value; it equals the
    escrow id.
    """

    def __init__(
        self,
        terms: EscrowTerms,
        ledger: LedgerAdapter,
        clock: Optional[Clock] = None,
        nonce: int = 0,
    ):
        verify_terms(terms)
        self._terms = terms
        self._ledger = ledger
        self._clock = clock if clock is not None else SystemClock()
        self._created_at = self._clock()
        self._last_seen = self._created_at
        self._escrow_id = derive_escrow_id(terms, self._created_at, nonce)
        self._record = EscrowRecord(last_action_timestamp=self._created_at)
        self._entered = False

    # --- read accessors ---

    @property
    def terms(self) -> EscrowTerms:
        return self._terms

    @property
    def escrow_id(self) -> bytes:
        return self._escrow_id

    @property
    def custody(self) -> bytes:
        return self._escrow_id

    @property
    def created_at(self) -> int:
        return self._created_at

    @property
    def state(self) -> EscrowState:
        return self._record.state

    @property
    def state_label(self) -> str:
        return self._record.state.label

    @property
    def balance(self) -> int:
        return self._record.balance

    @property
    def milestone_count(self) -> int:
        return self._record.milestones.count

    def milestone(self, index: int) -> Milestone:
        return self._record.milestones.get(index)

    @property
    def committed_to_milestones(self) -> int:
        if self._record.state not in MILESTONE_STATES:
            return 0
        return self._record.milestones.committed_incomplete()

    @property
    def available_for_milestones(self) -> int:
        if self._record.state not in MILESTONE_STATES:
            return 0
        return self._record.balance - self._record.milestones.committed_incomplete()

    @property
    def window_deadline(self) -> int:
        """Last second of the current shipment or inspection window."""
        return self._record.last_action_timestamp + self._terms.dispute_time_limit

    @property
    def events(self) -> Tuple[EscrowEvent, ...]:
        return tuple(self._record.events)

    def has_confirmed_shipment(self, party: bytes) -> bool:
        if party == self._terms.seller:
            return self._record.shipment_marked
        if party == self._terms.buyer:
            return self._record.delivery_confirmed
        return False

    def snapshot(self) -> EscrowSnapshot:
        rec = self._record
        return EscrowSnapshot(
            escrow_id=self._escrow_id,
            terms=self._terms,
            state=rec.state,
            balance=rec.balance,
            funded=rec.funded,
            created_at=self._created_at,
            last_action_timestamp=rec.last_action_timestamp,
            shipment_marked=rec.shipment_marked,
            delivery_confirmed=rec.delivery_confirmed,
            tracking_number=rec.tracking_number,
            dispute_opened_at=rec.dispute_opened_at,
            milestones=tuple(rec.milestones),
            total_deposited=rec.total_deposited,
            total_released=rec.total_released,
            retained_fees=rec.retained_fees,
            event_count=len(rec.events),
        )

    # --- operations ---

    def deposit(self, caller: bytes, amount: int) -> EscrowEvent:
        with self._guarded(Operation.DEPOSIT):
            self._require_caller(caller, self._terms.buyer, ErrorCode.NOT_BUYER)
            self._require_state(Operation.DEPOSIT, EscrowState.AWAITING_PAYMENT)
            _require_positive_amount(amount, "deposit amount")
            net = compute_net_deposit(amount, self._terms.escrow_fee_rate)
            fee = amount - net
            if net == 0:
                raise err(ErrorCode.INVALID_AMOUNT, "deposit leaves nothing after the platform fee")
            now = self._now()
            if self._ledger.allowance(caller, self.custody) < amount:
                raise err(ErrorCode.INSUFFICIENT_ALLOWANCE, "deposit exceeds buyer allowance")

            def effects(rec: EscrowRecord) -> None:
                rec.state = EscrowState.AWAITING_DELIVERY
                rec.balance = net
                rec.funded = True
                rec.last_action_timestamp = now
                rec.total_deposited += amount
                rec.retained_fees += fee

            event = EscrowEvent(
                EventKind.DEPOSITED, {"payer": caller, "net_amount": net, "fee": fee}
            )
            return self._commit(
                Operation.DEPOSIT,
                effects,
                event,
                lambda: self._ledger.collect(caller, self.custody, amount),
            )

    def create_milestone(self, caller: bytes, description: str, payment: int) -> EscrowEvent:
        with self._guarded(Operation.CREATE_MILESTONE):
            self._require_caller(caller, self._terms.buyer, ErrorCode.NOT_BUYER)
            self._require_state(Operation.CREATE_MILESTONE, *MILESTONE_STATES)
            registry = self._record.milestones
            registry.verify_create(description, payment, self._record.balance)
            index = registry.count

            def effects(rec: EscrowRecord) -> None:
                rec.milestones.insert(description, payment)

            event = EscrowEvent(
                EventKind.MILESTONE_CREATED,
                {"index": index, "description": description, "payment": payment},
            )
            return self._commit(Operation.CREATE_MILESTONE, effects, event)

    def complete_milestone(self, caller: bytes, index: int) -> EscrowEvent:
        with self._guarded(Operation.COMPLETE_MILESTONE):
            self._require_caller(caller, self._terms.buyer, ErrorCode.NOT_BUYER)
            self._require_state(Operation.COMPLETE_MILESTONE, EscrowState.AWAITING_INSPECTION)
            registry = self._record.milestones
            registry.verify_complete(index, self._record.balance)
            payment = registry.get(index).payment

            def effects(rec: EscrowRecord) -> None:
                rec.milestones.mark_completed(index)
                rec.balance -= payment
                rec.total_released += payment

            event = EscrowEvent(
                EventKind.MILESTONE_COMPLETED, {"index": index, "payment": payment}
            )
            return self._commit(
                Operation.COMPLETE_MILESTONE,
                effects,
                event,
                self._payout(self._terms.seller, payment),
            )

    def mark_as_shipped(self, caller: bytes, tracking: str) -> EscrowEvent:
        with self._guarded(Operation.MARK_AS_SHIPPED):
            self._require_caller(caller, self._terms.seller, ErrorCode.NOT_SELLER)
            if self._record.shipment_marked:
                raise err(ErrorCode.ALREADY_SHIPPED, "shipment already marked")
            self._require_state(Operation.MARK_AS_SHIPPED, EscrowState.AWAITING_DELIVERY)
            if not isinstance(tracking, str) or not tracking.strip():
                raise err(ErrorCode.INVALID_TRACKING, "tracking number must be non-empty")
            if len(tracking) > MAX_TRACKING_LEN:
                raise err(ErrorCode.INVALID_TRACKING, "tracking number too long")
            now = self._now()

            def effects(rec: EscrowRecord) -> None:
                rec.shipment_marked = True
                rec.tracking_number = tracking
                rec.last_action_timestamp = now
                rec.state = EscrowState.AWAITING_INSPECTION

            event = EscrowEvent(EventKind.SHIPPED, {"tracking": tracking})
            return self._commit(Operation.MARK_AS_SHIPPED, effects, event)

    def confirm_delivery(self, caller: bytes) -> EscrowEvent:
        with self._guarded(Operation.CONFIRM_DELIVERY):
            self._require_caller(caller, self._terms.buyer, ErrorCode.NOT_BUYER)
            if self._record.state == EscrowState.AWAITING_DELIVERY:
                raise err(ErrorCode.NOT_SHIPPED, "confirm_delivery: shipment not marked yet")
            self._require_state(Operation.CONFIRM_DELIVERY, EscrowState.AWAITING_INSPECTION)
            if not self._record.shipment_marked:
                raise err(ErrorCode.NOT_SHIPPED, "confirm_delivery: shipment not marked yet")
            amount = self._record.balance
            seller = self._terms.seller

            def effects(rec: EscrowRecord) -> None:
                rec.delivery_confirmed = True
                rec.balance = 0
                rec.total_released += amount
                rec.state = EscrowState.COMPLETE

            event = EscrowEvent(
                EventKind.DELIVERY_CONFIRMED, {"recipient": seller, "amount": amount}
            )
            return self._commit(
                Operation.CONFIRM_DELIVERY, effects, event, self._payout(seller, amount)
            )

    def open_dispute(self, caller: bytes) -> EscrowEvent:
        with self._guarded(Operation.OPEN_DISPUTE):
            self._require_caller(caller, self._terms.buyer, ErrorCode.NOT_BUYER)
            self._require_state(Operation.OPEN_DISPUTE, EscrowState.AWAITING_INSPECTION)
            if self._record.balance == 0:
                raise err(ErrorCode.EMPTY_ESCROW, "nothing left in escrow to dispute")
            now = self._now()
            if now > self.window_deadline:
                raise err(ErrorCode.WINDOW_ELAPSED, "inspection window has closed")

            def effects(rec: EscrowRecord) -> None:
                rec.state = EscrowState.DISPUTED
                rec.dispute_opened_at = now

            event = EscrowEvent(EventKind.DISPUTE_OPENED, {})
            return self._commit(Operation.OPEN_DISPUTE, effects, event)

    def resolve_dispute(self, caller: bytes, to_buyer: bool, amount: int) -> EscrowEvent:
        with self._guarded(Operation.RESOLVE_DISPUTE):
            self._require_caller(caller, self._terms.arbiter, ErrorCode.NOT_ARBITER)
            self._require_state(Operation.RESOLVE_DISPUTE, EscrowState.DISPUTED)
            _require_positive_amount(amount, "resolution amount")
            if amount > self._record.balance:
                raise err(
                    ErrorCode.INSUFFICIENT_BALANCE,
                    f"resolution amount {amount} exceeds balance {self._record.balance}",
                )
            recipient = self._terms.buyer if to_buyer else self._terms.seller

            def effects(rec: EscrowRecord) -> None:
                rec.balance -= amount
                rec.total_released += amount
                if rec.balance == 0:
                    rec.state = EscrowState.COMPLETE

            event = EscrowEvent(
                EventKind.DISPUTE_RESOLVED, {"recipient": recipient, "amount": amount}
            )
            return self._commit(
                Operation.RESOLVE_DISPUTE, effects, event, self._payout(recipient, amount)
            )

    def refund_buyer(self, caller: bytes) -> EscrowEvent:
        with self._guarded(Operation.REFUND_BUYER):
            self._require_caller(caller, self._terms.seller, ErrorCode.NOT_SELLER)
            self._require_state(Operation.REFUND_BUYER, *_REFUNDABLE_STATES)
            balance = self._record.balance
            split = compute_refund_split(balance, self._terms.return_fee_rate)
            buyer = self._terms.buyer
            arbiter = self._terms.arbiter

            def effects(rec: EscrowRecord) -> None:
                rec.balance = 0
                rec.total_released += balance
                rec.state = EscrowState.REFUNDED

            event = EscrowEvent(
                EventKind.BUYER_REFUNDED,
                {
                    "recipient": buyer,
                    "amount": split.returned,
                    "penalty": split.penalty,
                    "penalty_recipient": arbiter,
                },
            )
            return self._commit(
                Operation.REFUND_BUYER,
                effects,
                event,
                self._payouts([(buyer, split.returned), (arbiter, split.penalty)]),
            )

    def return_shipment(self, caller: bytes) -> EscrowEvent:
        with self._guarded(Operation.RETURN_SHIPMENT):
            self._require_caller(caller, self._terms.buyer, ErrorCode.NOT_BUYER)
            if self._record.state == EscrowState.AWAITING_DELIVERY:
                raise err(ErrorCode.NOT_SHIPPED, "return_shipment: shipment not marked yet")
            self._require_state(Operation.RETURN_SHIPMENT, EscrowState.AWAITING_INSPECTION)
            balance = self._record.balance
            if balance == 0:
                raise err(ErrorCode.EMPTY_ESCROW, "nothing left in escrow to settle a return")
            split = compute_return_split(balance, self._terms.return_fee_rate)
            seller = self._terms.seller
            arbiter = self._terms.arbiter

            def effects(rec: EscrowRecord) -> None:
                rec.balance = 0
                rec.total_released += balance
                rec.state = EscrowState.REFUNDED

            event = EscrowEvent(
                EventKind.SHIPMENT_RETURNED,
                {
                    "recipient": seller,
                    "amount": split.returned,
                    "penalty": split.penalty,
                    "penalty_recipient": arbiter,
                },
            )
            return self._commit(
                Operation.RETURN_SHIPMENT,
                effects,
                event,
                self._payouts([(seller, split.returned), (arbiter, split.penalty)]),
            )

    def partial_refund(self, caller: bytes, amount: int) -> EscrowEvent:
        with self._guarded(Operation.PARTIAL_REFUND):
            self._require_caller(caller, self._terms.seller, ErrorCode.NOT_SELLER)
            self._require_state(Operation.PARTIAL_REFUND, *_PRE_TERMINAL_STATES)
            _require_positive_amount(amount, "refund amount")
            balance = self._record.balance
            if amount > balance:
                raise err(
                    ErrorCode.INSUFFICIENT_BALANCE,
                    f"refund amount {amount} exceeds balance {balance}",
                )
            committed = self.committed_to_milestones
            if amount > balance - committed:
                raise err(
                    ErrorCode.MILESTONE_OVERCOMMITTED,
                    f"refund amount {amount} would release {committed} reserved for milestones",
                )
            buyer = self._terms.buyer

            def effects(rec: EscrowRecord) -> None:
                rec.balance -= amount
                rec.total_released += amount
                # An emptied dispute has nothing left for the arbiter to resolve.
                if rec.state == EscrowState.DISPUTED and rec.balance == 0:
                    rec.state = EscrowState.REFUNDED

            event = EscrowEvent(EventKind.PARTIAL_REFUND, {"recipient": buyer, "amount": amount})
            return self._commit(
                Operation.PARTIAL_REFUND, effects, event, self._payout(buyer, amount)
            )

    def timeout_release(self, caller: bytes) -> EscrowEvent:
        with self._guarded(Operation.TIMEOUT_RELEASE):
            self._require_caller(caller, self._terms.seller, ErrorCode.NOT_SELLER)
            self._require_state(Operation.TIMEOUT_RELEASE, EscrowState.AWAITING_INSPECTION)
            now = self._now()
            if now <= self.window_deadline:
                raise err(
                    ErrorCode.WINDOW_NOT_ELAPSED,
                    f"inspection window open until {self.window_deadline}",
                )
            amount = self._record.balance
            seller = self._terms.seller

            def effects(rec: EscrowRecord) -> None:
                rec.balance = 0
                rec.total_released += amount
                rec.state = EscrowState.COMPLETE

            event = EscrowEvent(
                EventKind.TIMEOUT_RELEASED, {"recipient": seller, "amount": amount}
            )
            return self._commit(
                Operation.TIMEOUT_RELEASE, effects, event, self._payout(seller, amount)
            )

    def reclaim_undelivered(self, caller: bytes) -> EscrowEvent:
        with self._guarded(Operation.RECLAIM_UNDELIVERED):
            self._require_caller(caller, self._terms.buyer, ErrorCode.NOT_BUYER)
            self._require_state(Operation.RECLAIM_UNDELIVERED, EscrowState.AWAITING_DELIVERY)
            now = self._now()
            if now <= self.window_deadline:
                raise err(
                    ErrorCode.WINDOW_NOT_ELAPSED,
                    f"shipment window open until {self.window_deadline}",
                )
            amount = self._record.balance
            buyer = self._terms.buyer

            def effects(rec: EscrowRecord) -> None:
                rec.balance = 0
                rec.total_released += amount
                rec.state = EscrowState.REFUNDED

            event = EscrowEvent(
                EventKind.UNDELIVERED_RECLAIMED, {"recipient": buyer, "amount": amount}
            )
            return self._commit(
                Operation.RECLAIM_UNDELIVERED, effects, event, self._payout(buyer, amount)
            )

    # --- internals ---

    @contextmanager
    def _guarded(self, operation: Operation) -> Iterator[None]:
        if self._entered:
            logger.warning("%s: re-entrant call rejected", operation.value)
            raise err(ErrorCode.REENTRANT_CALL, f"{operation.value}: re-entrant call rejected")
        self._entered = True
        try:
            yield
        finally:
            self._entered = False

    def _require_caller(self, caller: bytes, expected: bytes, code: ErrorCode) -> None:
        if caller != expected:
            raise err(code, f"caller is not the {code.name[4:].lower()}")

    def _require_state(self, operation: Operation, *allowed: EscrowState) -> None:
        current = self._record.state
        if current not in allowed:
            names = ", ".join(s.label for s in sorted(allowed))
            raise err(
                ErrorCode.WRONG_STATE,
                f"{operation.value} requires {names}; escrow is {current.label}",
            )

    def _now(self) -> int:
        now = self._clock()
        if now < self._last_seen:
            raise err(
                ErrorCode.CLOCK_REGRESSION,
                f"clock moved backwards from {self._last_seen} to {now}",
            )
        self._last_seen = now
        return now

    def _payout(self, recipient: bytes, amount: int) -> Optional[Callable[[], bool]]:
        if amount == 0:
            return None
        return lambda: self._ledger.transfer(self.custody, recipient, amount)

    def _payouts(self, payouts: Sequence[Tuple[bytes, int]]) -> Optional[Callable[[], bool]]:
        due = [(recipient, amount) for recipient, amount in payouts if amount > 0]
        if len(due) <= 1:
            return self._payout(*due[0]) if due else None
        return lambda: self._ledger.transfer_batch(self.custody, due)

    def _commit(
        self,
        operation: Operation,
        effects: Callable[[EscrowRecord], None],
        event: EscrowEvent,
        interaction: Optional[Callable[[], bool]] = None,
    ) -> EscrowEvent:
        before = deepcopy(self._record)
        effects(self._record)
        self._record.events.append(event)

        if interaction is not None:
            try:
                ok = interaction()
            except Exception as exc:
                self._record = before
                logger.warning("%s: ledger raised, rolled back: %s", operation.value, exc)
                raise err(ErrorCode.TRANSFER_FAILED, f"{operation.value}: ledger raised: {exc}") from exc
            if not ok:
                self._record = before
                logger.warning("%s: ledger refused transfer, rolled back", operation.value)
                raise err(ErrorCode.TRANSFER_FAILED, f"{operation.value}: ledger refused transfer")

        after = self._record.state
        if after != before.state and after.is_terminal:
            logger.info(
                "escrow %s %s -> %s via %s",
                self._escrow_id.hex()[:16],
                before.state.label,
                after.label,
                operation.value,
            )
        else:
            logger.debug(
                "escrow %s %s: %s -> %s, balance %d",
                self._escrow_id.hex()[:16],
                operation.value,
                before.state.label,
                after.label,
                self._record.balance,
            )
        return event


_DISPATCH = {
    Operation.DEPOSIT: EscrowContract.deposit,
    Operation.CREATE_MILESTONE: EscrowContract.create_milestone,
    Operation.COMPLETE_MILESTONE: EscrowContract.complete_milestone,
    Operation.MARK_AS_SHIPPED: EscrowContract.mark_as_shipped,
    Operation.CONFIRM_DELIVERY: EscrowContract.confirm_delivery,
    Operation.OPEN_DISPUTE: EscrowContract.open_dispute,
    Operation.RESOLVE_DISPUTE: EscrowContract.resolve_dispute,
    Operation.REFUND_BUYER: EscrowContract.refund_buyer,
    Operation.PARTIAL_REFUND: EscrowContract.partial_refund,
    Operation.TIMEOUT_RELEASE: EscrowContract.timeout_release,
    Operation.RECLAIM_UNDELIVERED: EscrowContract.reclaim_undelivered,
    Operation.RETURN_SHIPMENT: EscrowContract.return_shipment,
}


def apply_operation(
    contract: EscrowContract,
    operation: Union[Operation, str],
    caller: bytes,
    **args: object,
) -> TransitionResult:
    """Run one operation and report the outcome instead of raising.

    The contract is unchanged when the result is a failure.
    """
    try:
        op = operation if isinstance(operation, Operation) else Operation(operation)
    except ValueError:
        return TransitionResult.failure(
            err(ErrorCode.INVALID_OPERATION, f"unknown operation: {operation}")
        )
    try:
        event = _DISPATCH[op](contract, caller, **args)
    except EscrowError as exc:
        return TransitionResult.failure(exc)
    return TransitionResult.success(event)
