"""
Canonical JSON and SHA-256 helpers.

Timeline fingerprints and the ids of records created by recalculation are
derived from canonical JSON, so the same snapshot and the same change always
produce the same plan, ids included.
"""

import hashlib
import json
from datetime import date
from enum import Enum
from typing import Any
from uuid import UUID, uuid5

# uuid5 namespace for records derived during recalculation
RECORD_NAMESPACE = UUID("6f1c2a4e-9b0d-5c83-a1f7-3e52d8b40c19")


def _encode(obj: Any) -> Any:
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, date):  # datetime included
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, (set, frozenset)):
        return sorted(str(getattr(v, "value", v)) for v in obj)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def canonicalize_json(data: Any) -> str:
    """Sorted keys, no whitespace, dates/UUIDs/enums/sets rendered as strings."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=_encode)


def hash_payload(payload: dict | list) -> str:
    """Hex SHA-256 of the canonical JSON of ``payload``."""
    return hash_bytes(canonicalize_json(payload).encode("utf-8"))


def hash_bytes(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


def derive_record_id(*parts: Any) -> UUID:
    """Stable uuid5 of the canonicalized ``parts``."""
    return uuid5(RECORD_NAMESPACE, canonicalize_json(list(parts)))
