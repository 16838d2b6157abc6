"""Ledger adapter: the external collaborator that moves value.

`EscrowContract` is the only caller. Every value-moving call is
all-or-nothing: on a `False` return or an exception nothing is applied, and
`transfer_batch` applies all of its payouts or none.

`InMemoryLedger` is the reference implementation used by tests and the
scenario runner. Recipient hooks run after a transfer is applied and before
it returns, which is where an external party can call back into the escrow.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Protocol, Sequence, Tuple

logger = logging.getLogger(__name__)


class LedgerAdapter(Protocol):
    def allowance(self, owner: bytes, spender: bytes) -> int:
        ...

    def balance_of(self, identity: bytes) -> int:
        ...

    def collect(self, payer: bytes, custody: bytes, amount: int) -> bool:
        """Pull a pre-authorized `amount` from `payer` into `custody`."""
        ...

    def transfer(self, custody: bytes, recipient: bytes, amount: int) -> bool:
        """Pay `amount` out of `custody` to `recipient`."""
        ...

    def transfer_batch(self, custody: bytes, payouts: Sequence[Tuple[bytes, int]]) -> bool:
        """Pay every `(recipient, amount)` out of `custody`, or none of them."""
        ...


class EntryKind(Enum):
    COLLECT = "collect"
    TRANSFER = "transfer"


@dataclass(frozen=True)
class LedgerEntry:
    kind: EntryKind
    source: bytes
    destination: bytes
    amount: int


TransferHook = Callable[[LedgerEntry], None]


class InMemoryLedger:
    def __init__(self, balances: Optional[Dict[bytes, int]] = None):
        self.balances: Dict[bytes, int] = dict(balances or {})
        self.allowances: Dict[Tuple[bytes, bytes], int] = {}
        self.history: List[LedgerEntry] = []
        self._hooks: Dict[bytes, List[TransferHook]] = {}
        self._rejecting: set[bytes] = set()
        self._fail_next = 0

    # --- setup helpers ---

    def mint(self, identity: bytes, amount: int) -> None:
        self.balances[identity] = self.balances.get(identity, 0) + amount

    def approve(self, owner: bytes, spender: bytes, amount: int) -> None:
        self.allowances[(owner, spender)] = amount

    def add_hook(self, recipient: bytes, hook: TransferHook) -> None:
        """Run `hook` whenever `recipient` receives value."""
        self._hooks.setdefault(recipient, []).append(hook)

    def reject(self, recipient: bytes) -> None:
        """Make every transfer to `recipient` fail (a recipient that reverts)."""
        self._rejecting.add(recipient)

    def accept(self, recipient: bytes) -> None:
        self._rejecting.discard(recipient)

    def fail_next(self, count: int = 1) -> None:
        self._fail_next = count

    # --- LedgerAdapter ---

    def allowance(self, owner: bytes, spender: bytes) -> int:
        return self.allowances.get((owner, spender), 0)

    def balance_of(self, identity: bytes) -> int:
        return self.balances.get(identity, 0)

    def collect(self, payer: bytes, custody: bytes, amount: int) -> bool:
        if self.allowance(payer, custody) < amount:
            logger.debug("collect refused: allowance below %d", amount)
            return False
        entry = LedgerEntry(EntryKind.COLLECT, payer, custody, amount)
        if not self._apply(entry):
            return False
        self.allowances[(payer, custody)] -= amount
        return True

    def transfer(self, custody: bytes, recipient: bytes, amount: int) -> bool:
        return self._apply(LedgerEntry(EntryKind.TRANSFER, custody, recipient, amount))

    def transfer_batch(self, custody: bytes, payouts: Sequence[Tuple[bytes, int]]) -> bool:
        applied: List[LedgerEntry] = []
        try:
            for recipient, amount in payouts:
                entry = LedgerEntry(EntryKind.TRANSFER, custody, recipient, amount)
                if not self._apply(entry):
                    logger.debug("batch refused at %d of %d", len(applied), len(payouts))
                    self._undo_all(applied)
                    return False
                applied.append(entry)
        except Exception:
            self._undo_all(applied)
            raise
        return True

    # --- internals ---

    def _apply(self, entry: LedgerEntry) -> bool:
        if self._fail_next > 0:
            self._fail_next -= 1
            logger.debug("%s failed by injection", entry.kind.value)
            return False
        if entry.amount <= 0 or entry.destination in self._rejecting:
            return False
        if self.balance_of(entry.source) < entry.amount:
            return False

        self.balances[entry.source] -= entry.amount
        self.balances[entry.destination] = self.balance_of(entry.destination) + entry.amount
        self.history.append(entry)
        try:
            for hook in self._hooks.get(entry.destination, []):
                hook(entry)
        except Exception:
            # A reverting recipient undoes the whole transfer.
            self._undo(entry)
            raise
        return True

    def _undo(self, entry: LedgerEntry) -> None:
        last = len(self.history) - 1 - self.history[::-1].index(entry)
        del self.history[last]
        self.balances[entry.destination] -= entry.amount
        self.balances[entry.source] += entry.amount

    def _undo_all(self, entries: List[LedgerEntry]) -> None:
        for entry in reversed(entries):
            self._undo(entry)
