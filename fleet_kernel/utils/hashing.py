"""
Deterministic hashing utilities.

All hashing in the billing engine must be reproducible across processes and
databases.  Used by the statement audit chain and by the config checksum.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


def _json_serializer(obj: Any) -> Any:
    """Serialize the non-JSON types that appear in audit payloads."""
    if isinstance(obj, Decimal):
        # Normalize so that 10.00 and 10.0 hash identically
        return format(obj.normalize(), "f")
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value

    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def canonicalize_json(data: Any) -> str:
    """Sorted keys, no whitespace, stable handling of Decimal/date/UUID."""
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        default=_json_serializer,
    )


def to_json_safe(data: Any) -> Any:
    """Round-trip through canonical JSON so the value can go into a JSON column."""
    return json.loads(canonicalize_json(data))


def hash_payload(payload: dict) -> str:
    """Hex-encoded SHA-256 of the canonical JSON form of ``payload``."""
    return hashlib.sha256(canonicalize_json(payload).encode("utf-8")).hexdigest()


def hash_audit_entry(
    statement_id: str,
    seq: int,
    change_type: str,
    payload_hash: str,
    prev_hash: str | None,
) -> str:
    """
    Hash of one statement audit entry, linked to its predecessor.

    ``prev_hash`` is None for the first entry of a statement and is then
    hashed as the literal "GENESIS".
    """
    components = [
        str(statement_id),
        str(seq),
        change_type,
        payload_hash,
        prev_hash or "GENESIS",
    ]
    return hashlib.sha256("|".join(components).encode("utf-8")).hexdigest()
