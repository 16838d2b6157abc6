"""Canonical escrow state digest implementation (v1)."""
from __future__ import annotations

from typing import Any

from blake3 import blake3


def _hex_to_bytes(value: str | None) -> bytes:
    if value is None:
        return b""
    if not isinstance(value, str):
        raise TypeError("hex value must be string")
    v = value[2:] if value.startswith(("0x", "0X")) else value
    if v == "":
        return b""
    return bytes.fromhex(v)


def _u64_be(value: int) -> bytes:
    if value < 0:
        raise ValueError("u64 must be non-negative")
    return int(value).to_bytes(8, "big", signed=False)


def _u256_be(value: int) -> bytes:
    if value < 0:
        raise ValueError("u256 must be non-negative")
    return int(value).to_bytes(32, "big", signed=False)


def _flag(value: Any) -> bytes:
    return b"\x01" if value else b"\x00"


def _text(value: str) -> bytes:
    raw = value.encode("utf-8")
    return _u64_be(len(raw)) + raw


def _identity(value: str) -> bytes:
    raw = _hex_to_bytes(value)
    if len(raw) != 32:
        raise ValueError(f"identity must be 32 bytes, got {len(raw)}")
    return raw


def compute_state_digest(snapshot: dict[str, Any]) -> str:
    """Compute state digest v1 from a snapshot in fixture JSON form.

    Fields are encoded in canonical order and hashed with BLAKE3-256. Amounts
    are 32-byte big-endian, times and counters 8-byte big-endian.
    """
    terms = snapshot.get("terms", {})
    buf = bytearray()
    buf += _identity(snapshot.get("escrow_id", ""))
    for role in ("buyer", "seller", "arbiter"):
        buf += _identity(terms.get(role, ""))
    for name in ("escrow_fee_rate", "return_fee_rate", "dispute_time_limit"):
        buf += _u64_be(int(terms.get(name, 0)))

    buf += _u64_be(int(snapshot.get("state_code", 0)))
    buf += _u256_be(int(snapshot.get("balance", 0)))
    buf += _flag(snapshot.get("funded"))
    buf += _u64_be(int(snapshot.get("created_at", 0)))
    buf += _u64_be(int(snapshot.get("last_action_timestamp", 0)))
    buf += _flag(snapshot.get("shipment_marked"))
    buf += _flag(snapshot.get("delivery_confirmed"))
    buf += _text(snapshot.get("tracking_number", ""))

    disputed_at = snapshot.get("dispute_opened_at")
    buf += _flag(disputed_at is not None)
    buf += _u64_be(int(disputed_at or 0))

    milestones = snapshot.get("milestones", [])
    buf += _u64_be(len(milestones))
    for m in milestones:
        buf += _text(m.get("description", ""))
        buf += _u256_be(int(m.get("payment", 0)))
        buf += _flag(m.get("completed"))

    for name in ("total_deposited", "total_released", "retained_fees"):
        buf += _u256_be(int(snapshot.get(name, 0)))
    buf += _u64_be(int(snapshot.get("event_count", 0)))

    return blake3(buf).hexdigest()
