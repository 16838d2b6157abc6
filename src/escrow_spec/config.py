"""Escrow configuration constants and environment-driven defaults.

Keep the constants in sync with the fee and window rules in `fees.py`,
`milestones.py` and `state_machine.py`.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from .types import EscrowTerms

# Identities
IDENTITY_LEN = 32
NULL_IDENTITY = bytes(IDENTITY_LEN)

# Fees (integer percentages)
PERCENT_DENOMINATOR = 100
MAX_FEE_RATE = 100
DEFAULT_ESCROW_FEE_RATE = 2
DEFAULT_RETURN_FEE_RATE = 5

# Windows (seconds)
MIN_DISPUTE_TIME_LIMIT = 1
MAX_DISPUTE_TIME_LIMIT = 365 * 86_400
DEFAULT_DISPUTE_TIME_LIMIT = 86_400  # 1 day

# Payload limits
MAX_DESCRIPTION_LEN = 1024
MAX_TRACKING_LEN = 256
MAX_MILESTONES = 64

# Amounts are tracked as uint256 on the original ledger
U256_MAX = (1 << 256) - 1


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    return int(raw)


@dataclass
class EscrowDefaults:
    """Default terms used when a caller does not supply them explicitly."""
    escrow_fee_rate: int = DEFAULT_ESCROW_FEE_RATE
    return_fee_rate: int = DEFAULT_RETURN_FEE_RATE
    dispute_time_limit: int = DEFAULT_DISPUTE_TIME_LIMIT
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "EscrowDefaults":
        """Load defaults from environment variables."""
        config = cls()
        config.escrow_fee_rate = _env_int("ESCROW_FEE_RATE", config.escrow_fee_rate)
        config.return_fee_rate = _env_int("ESCROW_RETURN_FEE_RATE", config.return_fee_rate)
        config.dispute_time_limit = _env_int(
            "ESCROW_DISPUTE_TIME_LIMIT", config.dispute_time_limit
        )
        config.log_level = os.environ.get("ESCROW_LOG_LEVEL", config.log_level).upper()
        return config

    def terms_for(
        self,
        buyer: bytes,
        seller: bytes,
        arbiter: bytes,
        escrow_fee_rate: Optional[int] = None,
        return_fee_rate: Optional[int] = None,
        dispute_time_limit: Optional[int] = None,
    ) -> EscrowTerms:
        """Build `EscrowTerms`, filling unspecified values from these defaults."""
        return EscrowTerms(
            buyer=buyer,
            seller=seller,
            arbiter=arbiter,
            escrow_fee_rate=self.escrow_fee_rate if escrow_fee_rate is None else escrow_fee_rate,
            return_fee_rate=self.return_fee_rate if return_fee_rate is None else return_fee_rate,
            dispute_time_limit=(
                self.dispute_time_limit if dispute_time_limit is None else dispute_time_limit
            ),
        )
