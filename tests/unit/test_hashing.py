"""Unit tests for canonical serialization and source hashing."""

from __future__ import annotations

import hashlib

import pytest

from sportlink_sync.sync.hashing import compute_source_hash, stable_stringify


# ---------------------------------------------------------------------------
# stable_stringify
# ---------------------------------------------------------------------------

class TestStableStringify:
    def test_scalars(self):
        assert stable_stringify(None) == "null"
        assert stable_stringify(True) == "true"
        assert stable_stringify(False) == "false"
        assert stable_stringify(42) == "42"
        assert stable_stringify(1.5) == "1.5"
        assert stable_stringify("abc") == '"abc"'

    def test_mapping_keys_sorted(self):
        assert stable_stringify({"b": 1, "a": 2}) == '{"a":2,"b":1}'

    def test_key_order_does_not_matter(self):
        first = {"x": {"b": [1, 2], "a": None}, "y": "z"}
        second = {"y": "z", "x": {"a": None, "b": [1, 2]}}
        assert stable_stringify(first) == stable_stringify(second)

    def test_list_order_preserved(self):
        assert stable_stringify([3, 1, 2]) == "[3,1,2]"
        assert stable_stringify([1, 2]) != stable_stringify([2, 1])

    def test_tuple_serializes_like_list(self):
        assert stable_stringify((1, "a")) == stable_stringify([1, "a"])

    def test_empty_containers(self):
        assert stable_stringify({}) == "{}"
        assert stable_stringify([]) == "[]"

    def test_string_escaping(self):
        assert stable_stringify('say "hi"\n') == '"say \\"hi\\"\\n"'

    def test_non_ascii_kept_verbatim(self):
        assert stable_stringify("Zoë") == '"Zoë"'

    def test_non_string_key_rejected(self):
        with pytest.raises(TypeError):
            stable_stringify({1: "a"})

    def test_unserializable_value_rejected(self):
        with pytest.raises(TypeError):
            stable_stringify({"a": object()})


# ---------------------------------------------------------------------------
# compute_source_hash
# ---------------------------------------------------------------------------

class TestComputeSourceHash:
    def test_matches_sha256_of_canonical_document(self):
        expected = hashlib.sha256(
            '{"data":{"name":"Alice"},"knvb_id":"A1"}'.encode("utf-8")
        ).hexdigest()
        assert compute_source_hash("A1", {"name": "Alice"}, "knvb_id") == expected

    def test_is_hex_digest(self):
        digest = compute_source_hash("A1", {"name": "Alice"})
        assert len(digest) == 64
        int(digest, 16)

    def test_stable_across_key_order(self):
        assert compute_source_hash("A1", {"a": 1, "b": 2}) == compute_source_hash(
            "A1", {"b": 2, "a": 1}
        )

    def test_payload_change_changes_hash(self):
        assert compute_source_hash("A1", {"name": "Alice"}) != compute_source_hash(
            "A1", {"name": "Alicia"}
        )

    @pytest.mark.parametrize(
        ("before", "after"),
        [
            ({"a": 1}, {"a": 1, "b": 2}),
            ({"a": 1, "b": 2}, {"a": 1}),
            ({"a": 1}, {"a": "1"}),
            ({"a": 1}, {"a": 1.0}),
            ({"a": True}, {"a": 1}),
            ({"a": False}, {"a": 0}),
            ({"a": None}, {}),
            ({"a": None}, {"a": ""}),
            ({"a": []}, {"a": {}}),
            ({"a": [1, [2]]}, {"a": [[1], 2]}),
            ({"a": [1, 2]}, {"a": [1, 2, 2]}),
            ({"a": "x"}, {"A": "x"}),
            (
                {"teams": [{"name": "JO13", "staff": {"coach": {"since": 2020}}}]},
                {"teams": [{"name": "JO13", "staff": {"coach": {"since": 2021}}}]},
            ),
            (
                {"teams": [{"name": "JO13"}, {"name": "JO15"}]},
                {"teams": [{"name": "JO15"}, {"name": "JO13"}]},
            ),
            ({"acf": {"contact_info": [{"type": "email"}]}}, {"acf": {"contact_info": [{"type": "phone"}]}}),
        ],
    )
    def test_structural_changes_change_hash(self, before, after):
        assert compute_source_hash("A1", before) != compute_source_hash("A1", after)

    def test_key_change_changes_hash(self):
        assert compute_source_hash("A1", {}) != compute_source_hash("A2", {})

    def test_none_payload_hashes_like_empty(self):
        assert compute_source_hash("A1", None) == compute_source_hash("A1", {})

    def test_key_field_is_part_of_document(self):
        assert compute_source_hash("A1", {}, "knvb_id") != compute_source_hash("A1", {}, "email")
