"""Milestone registry: ordered partial-release commitments against the balance.

An incomplete milestone reserves its payment against the escrow balance; no
value moves until the milestone is completed. The registry never touches the
balance itself. `EscrowContract` verifies, mutates, and pays out.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Iterator, List

from .config import MAX_DESCRIPTION_LEN, MAX_MILESTONES
from .errors import ErrorCode, err
from .types import Milestone


class MilestoneRegistry:
    def __init__(self) -> None:
        self._items: List[Milestone] = []

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Milestone]:
        return iter(tuple(self._items))

    @property
    def count(self) -> int:
        return len(self._items)

    def get(self, index: int) -> Milestone:
        self._require_index(index)
        return self._items[index]

    def committed_incomplete(self) -> int:
        return sum(m.payment for m in self._items if not m.completed)

    # --- verification (no mutation) ---

    def verify_create(self, description: str, payment: int, balance: int) -> None:
        if not isinstance(description, str) or not description.strip():
            raise err(ErrorCode.INVALID_DESCRIPTION, "milestone description must be non-empty")
        if len(description) > MAX_DESCRIPTION_LEN:
            raise err(ErrorCode.INVALID_DESCRIPTION, "milestone description too long")
        if isinstance(payment, bool) or not isinstance(payment, int):
            raise err(ErrorCode.INVALID_AMOUNT, "milestone payment must be an integer")
        if payment <= 0:
            raise err(ErrorCode.INVALID_AMOUNT, "milestone payment must be > 0")
        if len(self._items) >= MAX_MILESTONES:
            raise err(ErrorCode.TOO_MANY_MILESTONES, f"at most {MAX_MILESTONES} milestones")
        available = balance - self.committed_incomplete()
        if payment > available:
            raise err(
                ErrorCode.MILESTONE_OVERCOMMITTED,
                f"milestone payment {payment} exceeds uncommitted balance {available}",
            )

    def verify_complete(self, index: int, balance: int) -> None:
        milestone = self.get(index)
        if milestone.completed:
            raise err(ErrorCode.MILESTONE_COMPLETED, f"milestone {index} already completed")
        if milestone.payment > balance:
            raise err(
                ErrorCode.INSUFFICIENT_BALANCE,
                f"milestone payment {milestone.payment} exceeds balance {balance}",
            )

    # --- mutation (EscrowContract only, after verification) ---

    def insert(self, description: str, payment: int) -> int:
        self._items.append(Milestone(description=description, payment=payment))
        return len(self._items) - 1

    def mark_completed(self, index: int) -> Milestone:
        done = replace(self.get(index), completed=True)
        self._items[index] = done
        return done

    def _require_index(self, index: int) -> None:
        if isinstance(index, bool) or not isinstance(index, int):
            raise err(ErrorCode.INVALID_INDEX, "milestone index must be an integer")
        if index < 0 or index >= len(self._items):
            raise err(ErrorCode.INVALID_INDEX, f"milestone index {index} out of range")
