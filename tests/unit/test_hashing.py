"""Canonical hashing and derived record ids."""

from datetime import date, datetime, timezone
from uuid import UUID

import pytest

from membership_kernel.domain.statuses import MemberStatus
from membership_kernel.utils.hashing import (
    canonicalize_json,
    derive_record_id,
    hash_bytes,
    hash_payload,
)


class TestCanonicalizeJson:

    def test_sorted_keys_without_whitespace(self):
        assert canonicalize_json({"b": 1, "a": [1, 2]}) == '{"a":[1,2],"b":1}'

    def test_special_types(self):
        payload = {
            "status": MemberStatus.ACTIVE,
            "on": date(2024, 3, 1),
            "at": datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc),
            "id": UUID(int=1),
            "statuses": {MemberStatus.LEFT, MemberStatus.ACTIVE},
        }
        decoded = canonicalize_json(payload)
        assert '"status":"ACTIVE"' in decoded
        assert '"on":"2024-03-01"' in decoded
        assert '"at":"2024-03-01T09:30:00+00:00"' in decoded
        assert '"id":"00000000-0000-0000-0000-000000000001"' in decoded
        assert '"statuses":["ACTIVE","LEFT"]' in decoded

    def test_unsupported_type(self):
        with pytest.raises(TypeError):
            canonicalize_json({"value": object()})


class TestHashes:

    def test_payload_hash_ignores_key_order(self):
        assert hash_payload({"a": 1, "b": 2}) == hash_payload({"b": 2, "a": 1})

    def test_hash_length(self):
        assert len(hash_payload({"a": 1})) == 64
        assert len(hash_bytes(b"name: default\n")) == 64

    def test_derived_ids_are_stable(self):
        first = derive_record_id("fingerprint", {"type": "InsertTransition"}, "transition")
        second = derive_record_id("fingerprint", {"type": "InsertTransition"}, "transition")
        assert first == second
        assert first.version == 5

    def test_derived_ids_differ_by_role(self):
        assert derive_record_id("fp", "transition") != derive_record_id("fp", "period")
