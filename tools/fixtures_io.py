"""Helpers to serialize escrow snapshots/events and load scenario files."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml

from escrow_spec.config import EscrowDefaults
from escrow_spec.test_accounts import NAMED_ACCOUNTS, identity_for
from escrow_spec.types import EscrowEvent, EscrowSnapshot, EscrowTerms


def _bytes_to_hex(v: bytes) -> str:
    return v.hex()


def _json_value(v: Any) -> Any:
    if isinstance(v, bytes):
        return _bytes_to_hex(v)
    return v


def terms_to_json(terms: EscrowTerms) -> dict[str, Any]:
    return {
        "buyer": _bytes_to_hex(terms.buyer),
        "seller": _bytes_to_hex(terms.seller),
        "arbiter": _bytes_to_hex(terms.arbiter),
        "escrow_fee_rate": terms.escrow_fee_rate,
        "return_fee_rate": terms.return_fee_rate,
        "dispute_time_limit": terms.dispute_time_limit,
    }


def snapshot_to_json(snapshot: EscrowSnapshot) -> dict[str, Any]:
    return {
        "escrow_id": _bytes_to_hex(snapshot.escrow_id),
        "terms": terms_to_json(snapshot.terms),
        "state": snapshot.state.label,
        "state_code": int(snapshot.state),
        "balance": snapshot.balance,
        "funded": snapshot.funded,
        "created_at": snapshot.created_at,
        "last_action_timestamp": snapshot.last_action_timestamp,
        "shipment_marked": snapshot.shipment_marked,
        "delivery_confirmed": snapshot.delivery_confirmed,
        "tracking_number": snapshot.tracking_number,
        "dispute_opened_at": snapshot.dispute_opened_at,
        "milestones": [
            {
                "description": m.description,
                "payment": m.payment,
                "completed": m.completed,
            }
            for m in snapshot.milestones
        ],
        "total_deposited": snapshot.total_deposited,
        "total_released": snapshot.total_released,
        "retained_fees": snapshot.retained_fees,
        "event_count": snapshot.event_count,
    }


def event_to_json(event: EscrowEvent) -> dict[str, Any]:
    return {
        "kind": event.kind.value,
        "payload": {k: _json_value(v) for k, v in event.payload.items()},
    }


def party(name_or_hex: str) -> bytes:
    """Resolve a scenario party reference: a known name, any name, or 64 hex chars."""
    if name_or_hex in NAMED_ACCOUNTS:
        return NAMED_ACCOUNTS[name_or_hex]
    if len(name_or_hex) == 64:
        try:
            return bytes.fromhex(name_or_hex)
        except ValueError:
            pass
    return identity_for(name_or_hex)


def terms_from_json(data: dict[str, Any], defaults: EscrowDefaults | None = None) -> EscrowTerms:
    defaults = defaults or EscrowDefaults()
    return defaults.terms_for(
        buyer=party(data.get("buyer", "buyer")),
        seller=party(data.get("seller", "seller")),
        arbiter=party(data.get("arbiter", "arbiter")),
        escrow_fee_rate=data.get("escrow_fee_rate"),
        return_fee_rate=data.get("return_fee_rate"),
        dispute_time_limit=data.get("dispute_time_limit"),
    )


def load_scenario(path: Path) -> dict[str, Any]:
    text = path.read_text()
    try:
        if path.suffix == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ValueError(f"{path}: invalid YAML: {e}") from e
    if not isinstance(data, dict):
        raise ValueError(f"{path}: scenario must be a mapping")
    data.setdefault("name", path.stem)
    return data
