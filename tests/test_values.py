"""
Tests for ValueStore: sparse per-entity values, upsert semantics,
bulk copy and cascades.
"""

import uuid

import pytest


def _ids(n):
    return [str(uuid.uuid4()) for _ in range(n)]


class TestGetForEntities:

    def test_every_entity_present_even_without_values(self, values):
        a, b, c = _ids(3)
        values.upsert(a, "budget", 10)
        result = values.get_for_entities([a, b, c])
        assert result == {a: {"budget": 10}, b: {}, c: {}}

    def test_non_canonical_ids_are_normalised(self, values):
        a, b = _ids(2)
        values.upsert(a, "budget", 10)
        result = values.get_for_entities([a.upper(), "{" + b + "}", "nope"])
        assert result == {a: {"budget": 10}, b: {}}

    def test_empty_input(self, values):
        assert values.get_for_entities([]) == {}

    def test_restrict_to_keys(self, values):
        (a,) = _ids(1)
        values.upsert(a, "budget", 10)
        values.upsert(a, "notes", "hi")
        assert values.get_for_entities([a], column_keys=["notes"]) == {a: {"notes": "hi"}}

    def test_empty_key_list_returns_empty_mappings(self, values):
        (a,) = _ids(1)
        values.upsert(a, "budget", 10)
        assert values.get_for_entities([a], column_keys=[]) == {a: {}}

    @pytest.mark.parametrize("payload", [
        42, 3.5, "text", True, None, [1, "two"], {"nested": {"x": 1}},
    ])
    def test_values_are_opaque_json(self, values, payload):
        (a,) = _ids(1)
        values.upsert(a, "anything", payload)
        assert values.get_for_entities([a])[a] == {"anything": payload}


class TestUpsert:

    def test_last_write_wins_single_row(self, values):
        (a,) = _ids(1)
        first = values.upsert(a, "budget", 1)
        second = values.upsert(a, "budget", 2)
        assert second.value == 2
        assert second.created_at == first.created_at
        assert second.updated_at > first.updated_at
        assert values.count_for_column("budget") == 1

    def test_get_single(self, values):
        (a,) = _ids(1)
        values.upsert(a, "budget", 5)
        got = values.get(a, "budget")
        assert got.entity_id == a
        assert got.value == 5
        assert values.get(a, "missing") is None


class TestCopyColumn:

    def test_copy_reproduces_values(self, values):
        ids = _ids(3)
        for i, eid in enumerate(ids):
            values.upsert(eid, "src", {"n": i})
        copied = values.copy_column("src", "dst")
        assert copied == 3
        result = values.get_for_entities(ids)
        for eid in ids:
            assert result[eid]["dst"] == result[eid]["src"]

    def test_copy_is_idempotent(self, values):
        (a,) = _ids(1)
        values.upsert(a, "src", "x")
        values.copy_column("src", "dst")
        values.copy_column("src", "dst")
        assert values.count_for_column("dst") == 1

    def test_copy_empty_column(self, values):
        assert values.copy_column("nothing", "dst") == 0


class TestDeletes:

    def test_delete_for_entity(self, values):
        a, b = _ids(2)
        values.upsert(a, "x", 1)
        values.upsert(a, "y", 2)
        values.upsert(b, "x", 3)
        assert values.delete_for_entity(a) == 2
        assert values.get_for_entities([a, b]) == {a: {}, b: {"x": 3}}

    def test_delete_for_column(self, values):
        a, b = _ids(2)
        values.upsert(a, "x", 1)
        values.upsert(b, "x", 2)
        values.upsert(b, "y", 3)
        assert values.delete_for_column("x") == 2
        assert values.get_for_entities([a, b]) == {a: {}, b: {"y": 3}}

    def test_deletes_are_idempotent(self, values):
        (a,) = _ids(1)
        assert values.delete_for_entity(a) == 0
        assert values.delete_for_column("never") == 0
