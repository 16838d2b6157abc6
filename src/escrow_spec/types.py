"""Core types for the escrow state machine.

The escrow tracks a single fungible balance for one buyer/seller/arbiter
triple. Identities are 32-byte values; the all-zero identity is null.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, Optional, Tuple

Identity = bytes


class EscrowState(IntEnum):
    AWAITING_PAYMENT = 0
    AWAITING_DELIVERY = 1
    AWAITING_INSPECTION = 2
    COMPLETE = 3
    REFUNDED = 4
    DISPUTED = 5

    @property
    def label(self) -> str:
        return _STATE_LABELS[self]

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES

    @classmethod
    def from_label(cls, label: str) -> "EscrowState":
        for state, name in _STATE_LABELS.items():
            if name == label:
                return state
        if label in cls.__members__:
            return cls[label]
        raise ValueError(f"unknown escrow state: {label!r}")


_STATE_LABELS = {
    EscrowState.AWAITING_PAYMENT: "AwaitingPayment",
    EscrowState.AWAITING_DELIVERY: "AwaitingDelivery",
    EscrowState.AWAITING_INSPECTION: "AwaitingInspection",
    EscrowState.COMPLETE: "Complete",
    EscrowState.REFUNDED: "Refunded",
    EscrowState.DISPUTED: "Disputed",
}

TERMINAL_STATES = frozenset({EscrowState.COMPLETE, EscrowState.REFUNDED})

# States in which milestones may be created and their reservations are binding.
MILESTONE_STATES = frozenset({EscrowState.AWAITING_DELIVERY, EscrowState.AWAITING_INSPECTION})


class Operation(Enum):
    DEPOSIT = "deposit"
    CREATE_MILESTONE = "create_milestone"
    COMPLETE_MILESTONE = "complete_milestone"
    MARK_AS_SHIPPED = "mark_as_shipped"
    CONFIRM_DELIVERY = "confirm_delivery"
    OPEN_DISPUTE = "open_dispute"
    RESOLVE_DISPUTE = "resolve_dispute"
    REFUND_BUYER = "refund_buyer"
    PARTIAL_REFUND = "partial_refund"
    TIMEOUT_RELEASE = "timeout_release"
    RECLAIM_UNDELIVERED = "reclaim_undelivered"
    RETURN_SHIPMENT = "return_shipment"


class EventKind(Enum):
    DEPOSITED = "deposited"
    MILESTONE_CREATED = "milestone_created"
    MILESTONE_COMPLETED = "milestone_completed"
    SHIPPED = "shipped"
    DELIVERY_CONFIRMED = "delivery_confirmed"
    DISPUTE_OPENED = "dispute_opened"
    DISPUTE_RESOLVED = "dispute_resolved"
    BUYER_REFUNDED = "buyer_refunded"
    PARTIAL_REFUND = "partial_refund"
    TIMEOUT_RELEASED = "timeout_released"
    UNDELIVERED_RECLAIMED = "undelivered_reclaimed"
    SHIPMENT_RETURNED = "shipment_returned"


@dataclass(frozen=True)
class EscrowTerms:
    buyer: Identity
    seller: Identity
    arbiter: Identity
    escrow_fee_rate: int
    return_fee_rate: int
    dispute_time_limit: int


@dataclass(frozen=True)
class Milestone:
    description: str
    payment: int
    completed: bool = False


@dataclass(frozen=True)
class EscrowEvent:
    kind: EventKind
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class EscrowSnapshot:
    """Point-in-time view of every observable escrow field."""
    escrow_id: bytes
    terms: EscrowTerms
    state: EscrowState
    balance: int
    funded: bool
    created_at: int
    last_action_timestamp: int
    shipment_marked: bool
    delivery_confirmed: bool
    tracking_number: str
    dispute_opened_at: Optional[int]
    milestones: Tuple[Milestone, ...]
    total_deposited: int
    total_released: int
    retained_fees: int
    event_count: int

    @property
    def net_deposited(self) -> int:
        """Deposits after the platform fee: what may ever leave the escrow."""
        return self.total_deposited - self.retained_fees
