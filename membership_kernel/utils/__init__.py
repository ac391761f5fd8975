"""Utility modules for the membership kernel."""

from membership_kernel.utils.hashing import (
    canonicalize_json,
    derive_record_id,
    hash_bytes,
    hash_payload,
)

__all__ = [
    "canonicalize_json",
    "derive_record_id",
    "hash_bytes",
    "hash_payload",
]
