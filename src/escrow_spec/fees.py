"""Fee policy: platform fee on deposit and return penalty on refunds.

All arithmetic is integer with truncating (floor) division, and the floor
bias is part of the contract. Whichever share a rule states as a percentage
is floored and the other share takes the remainder.
"""

from __future__ import annotations

from dataclasses import dataclass

from .config import MAX_FEE_RATE, PERCENT_DENOMINATOR
from .errors import ErrorCode, err


@dataclass(frozen=True)
class ReturnSplit:
    returned: int
    penalty: int


def require_rate(rate: int) -> None:
    if isinstance(rate, bool) or not isinstance(rate, int):
        raise err(ErrorCode.INVALID_FEE_RATE, "fee rate must be an integer")
    if rate < 0 or rate > MAX_FEE_RATE:
        raise err(ErrorCode.INVALID_FEE_RATE, f"fee rate {rate} outside [0, {MAX_FEE_RATE}]")


def _require_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise err(ErrorCode.INVALID_AMOUNT, "amount must be an integer")
    if amount < 0:
        raise err(ErrorCode.INVALID_AMOUNT, "amount must be >= 0")


def percent_of(amount: int, rate: int) -> int:
    """floor(amount * rate / 100)."""
    _require_amount(amount)
    require_rate(rate)
    return amount * rate // PERCENT_DENOMINATOR


def compute_platform_fee(gross: int, fee_rate: int) -> int:
    return percent_of(gross, fee_rate)


def compute_net_deposit(gross: int, fee_rate: int) -> int:
    """Value credited to the escrow balance for a gross deposit."""
    return gross - compute_platform_fee(gross, fee_rate)


def compute_return_split(balance: int, penalty_rate: int) -> ReturnSplit:
    """Split a returned shipment's balance into the seller share and the penalty.

    The penalty is floored, so the remainder stays with the seller.
    """
    penalty = percent_of(balance, penalty_rate)
    return ReturnSplit(returned=balance - penalty, penalty=penalty)


def compute_refund_split(balance: int, penalty_rate: int) -> ReturnSplit:
    """Split a seller-initiated refund into the buyer share and the penalty.

    The buyer share is `floor(balance * (100 - rate) / 100)`; the remainder is
    the penalty.
    """
    require_rate(penalty_rate)
    returned = percent_of(balance, PERCENT_DENOMINATOR - penalty_rate)
    return ReturnSplit(returned=returned, penalty=balance - returned)
