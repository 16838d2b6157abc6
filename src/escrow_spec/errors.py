"""Escrow error codes and exceptions."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum


class ErrorCategory(IntEnum):
    VALIDATION = 0x01
    AUTHORIZATION = 0x02
    ARITHMETIC = 0x03
    STATE = 0x04
    TIMING = 0x05
    TRANSFER = 0x06
    INTERNAL = 0xFF


class ErrorCode(IntEnum):
    # Validation
    INVALID_AMOUNT = 0x0100
    INVALID_FEE_RATE = 0x0101
    INVALID_IDENTITY = 0x0102
    INVALID_DESCRIPTION = 0x0103
    INVALID_TRACKING = 0x0104
    INVALID_INDEX = 0x0105
    INVALID_TIME_LIMIT = 0x0106
    SELF_OPERATION = 0x0107
    TOO_MANY_MILESTONES = 0x0108
    INVALID_OPERATION = 0x0109

    # Authorization
    NOT_BUYER = 0x0200
    NOT_SELLER = 0x0201
    NOT_ARBITER = 0x0202

    # Arithmetic
    INSUFFICIENT_BALANCE = 0x0300
    MILESTONE_OVERCOMMITTED = 0x0301
    EMPTY_ESCROW = 0x0302
    OVERFLOW = 0x0303

    # State
    WRONG_STATE = 0x0400
    ALREADY_SHIPPED = 0x0401
    NOT_SHIPPED = 0x0402
    MILESTONE_COMPLETED = 0x0403
    REENTRANT_CALL = 0x0404

    # Timing
    WINDOW_NOT_ELAPSED = 0x0500
    WINDOW_ELAPSED = 0x0501
    CLOCK_REGRESSION = 0x0502

    # Transfer
    TRANSFER_FAILED = 0x0600
    INSUFFICIENT_ALLOWANCE = 0x0601

    # Internal
    INTERNAL_ERROR = 0xFF00

    @property
    def category(self) -> ErrorCategory:
        return ErrorCategory(self >> 8)


@dataclass(frozen=True)
class EscrowError(Exception):
    code: ErrorCode
    message: str

    @property
    def category(self) -> ErrorCategory:
        return self.code.category

    def __str__(self) -> str:
        return f"{self.code.name}({self.code:#06x}): {self.message}"


# Allow Python's Exception machinery to set __traceback__/__context__/__cause__
# while keeping dataclass fields frozen (Python 3.13 contextlib compat).
_EXCEPTION_ATTRS = frozenset(("__traceback__", "__context__", "__cause__", "__suppress_context__"))
_frozen_setattr = EscrowError.__setattr__


def _escrow_error_setattr(self: EscrowError, name: str, value: object) -> None:
    if name in _EXCEPTION_ATTRS:
        object.__setattr__(self, name, value)
    else:
        _frozen_setattr(self, name, value)


EscrowError.__setattr__ = _escrow_error_setattr  # type: ignore[method-assign]


class ValidationError(EscrowError):
    """Malformed input: zero amounts, empty text, out-of-range rates or indices."""


class AuthorizationError(EscrowError):
    """Caller is not the party the operation requires."""


class EscrowArithmeticError(EscrowError):
    """Requested amount exceeds the balance or the uncommitted balance."""


class StateError(EscrowError):
    """Operation invoked outside the state it requires."""


class TimingError(EscrowError):
    """Time-boxed window not yet elapsed, or already closed."""


class TransferError(EscrowError):
    """The ledger refused or failed a value transfer."""


_CATEGORY_TYPES: dict[ErrorCategory, type[EscrowError]] = {
    ErrorCategory.VALIDATION: ValidationError,
    ErrorCategory.AUTHORIZATION: AuthorizationError,
    ErrorCategory.ARITHMETIC: EscrowArithmeticError,
    ErrorCategory.STATE: StateError,
    ErrorCategory.TIMING: TimingError,
    ErrorCategory.TRANSFER: TransferError,
    ErrorCategory.INTERNAL: EscrowError,
}


def err(code: ErrorCode, message: str) -> EscrowError:
    return _CATEGORY_TYPES[code.category](code=code, message=message)
