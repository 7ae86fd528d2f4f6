"""
Tests for column lifecycle: state machine, soft/permanent delete, restore,
duplicate, retype, reorder, add-to-right and autofill, including the
partial-failure behaviour of multi-step operations.
"""

import uuid

import pytest

from fieldstore.errors import (
    ColumnNotFound, DependencyFailure, DuplicateKey, InvalidTransition,
    PartialFailure, ValidationError,
)
from fieldstore.lifecycle import ColumnLifecycle, Pipeline
from fieldstore.models import ColumnDefinition


def _col(key, **kw):
    kw.setdefault("title", key.title())
    return ColumnDefinition(column_key=key, **kw)


# ── State machine ───────────────────────────────────────────────────────────

class TestColumnLifecycle:

    def test_initial_state(self):
        assert ColumnLifecycle.initial == "active"

    @pytest.mark.parametrize("from_state,to_state", [
        ("active", "inactive"),
        ("inactive", "active"),
        ("active", "deleted"),
        ("inactive", "deleted"),
    ])
    def test_valid_edges(self, from_state, to_state):
        t = ColumnLifecycle.validate_transition(from_state, to_state)
        assert (t.from_state, t.to_state) == (from_state, to_state)

    def test_deleted_is_terminal(self):
        assert ColumnLifecycle.allowed_transitions("deleted") == []
        with pytest.raises(InvalidTransition) as exc:
            ColumnLifecycle.validate_transition("deleted", "active")
        assert isinstance(exc.value, ValidationError)
        assert exc.value.status_code == 400


class TestPipeline:

    def test_runs_steps_in_order(self):
        calls = []
        results = (
            Pipeline("demo")
            .step("one", lambda: calls.append(1) or "a")
            .step("two", lambda: calls.append(2) or "b")
            .run()
        )
        assert calls == [1, 2]
        assert results == {"one": "a", "two": "b"}

    def test_first_step_error_propagates_unchanged(self):
        def boom():
            raise DuplicateKey("taken")

        with pytest.raises(DuplicateKey):
            Pipeline("demo").step("one", boom).step("two", lambda: None).run()

    def test_later_failure_is_partial(self):
        def boom():
            raise RuntimeError("disk full")

        with pytest.raises(PartialFailure) as exc:
            Pipeline("demo").step("one", lambda: 1).step("two", boom).run()
        assert exc.value.completed_steps == ["one"]
        assert exc.value.failed_step == "two"
        assert exc.value.details["failed_step"] == "two"
        assert isinstance(exc.value, DependencyFailure)


# ── Soft delete / restore / permanent delete ────────────────────────────────

class TestDelete:

    def test_soft_delete_keeps_values(self, lifecycle, registry, values):
        lifecycle.create(_col("budget"))
        eid = str(uuid.uuid4())
        values.upsert(eid, "budget", 1)
        col = lifecycle.delete("budget")
        assert col.is_active is False
        assert values.count_for_column("budget") == 1
        assert registry.list() == []

    def test_soft_delete_twice_is_noop(self, lifecycle):
        lifecycle.create(_col("a"))
        lifecycle.soft_delete("a")
        assert lifecycle.soft_delete("a").is_active is False

    def test_restore(self, lifecycle, registry):
        lifecycle.create(_col("a"))
        lifecycle.soft_delete("a")
        assert lifecycle.restore("a").is_active is True
        assert [c.column_key for c in registry.list()] == ["a"]

    def test_restore_active_is_noop(self, lifecycle):
        lifecycle.create(_col("a"))
        assert lifecycle.restore("a").is_active is True

    def test_permanent_delete_scenario(self, lifecycle, registry, values):
        budget = lifecycle.create(_col("budget", type="number"))
        notes = lifecycle.create(_col("notes"))
        assert (budget.order, notes.order) == (0, 1)
        eid = str(uuid.uuid4())
        values.upsert(eid, "budget", 1000)
        values.upsert(eid, "notes", "keep")

        lifecycle.delete("budget", permanent=True)

        assert not registry.has("budget")
        assert values.get_for_entities([eid]) == {eid: {"notes": "keep"}}
        assert values.get_for_entities([eid], column_keys=["budget"]) == {eid: {}}

    def test_permanent_delete_of_inactive(self, lifecycle, registry):
        lifecycle.create(_col("a"))
        lifecycle.soft_delete("a")
        lifecycle.delete("a", permanent=True)
        assert registry.list(include_inactive=True) == []

    def test_restore_after_permanent_delete(self, lifecycle):
        lifecycle.create(_col("a"))
        lifecycle.delete("a", permanent=True)
        with pytest.raises(ColumnNotFound):
            lifecycle.restore("a")

    def test_update_toggles_active_through_state_machine(self, lifecycle):
        lifecycle.create(_col("a"))
        assert lifecycle.update("a", {"is_active": False}).is_active is False
        assert lifecycle.update("a", {"is_active": True, "width": 222}).width == 222


# ── Duplicate ───────────────────────────────────────────────────────────────

class TestDuplicate:

    def test_duplicate_copies_definition_and_values(self, lifecycle, registry, values):
        lifecycle.create(_col("budget", title="Budget", type="number", width=240,
                              is_required=True, options={"precision": 2}))
        ids = [str(uuid.uuid4()) for _ in range(3)]
        for i, eid in enumerate(ids):
            values.upsert(eid, "budget", i * 100)

        result = lifecycle.duplicate("budget")
        copy = result.column

        assert copy.column_key.startswith("budget_copy_")
        assert copy.title == "Budget (Copy)"
        assert copy.order == 1
        assert (copy.type, copy.width, copy.is_required) == ("number", 240, True)
        assert copy.options == {"precision": 2}
        assert result.values_copied == 3
        stored = values.get_for_entities(ids)
        for eid in ids:
            assert stored[eid][copy.column_key] == stored[eid]["budget"]

    def test_duplicate_missing(self, lifecycle):
        with pytest.raises(ColumnNotFound):
            lifecycle.duplicate("ghost")

    def test_duplicate_does_not_shift_others(self, lifecycle, registry):
        lifecycle.create(_col("a"))
        lifecycle.create(_col("b"))
        lifecycle.duplicate("a")
        orders = {c.column_key: c.order for c in registry.list()}
        assert orders["b"] == 1

    def test_copy_failure_leaves_new_definition(self, lifecycle, registry, values, monkeypatch):
        lifecycle.create(_col("a"))

        def broken_copy(from_key, to_key):
            raise DependencyFailure("copy column values", "connection reset")

        monkeypatch.setattr(values, "copy_column", broken_copy)
        with pytest.raises(PartialFailure) as exc:
            lifecycle.duplicate("a")
        assert exc.value.completed_steps == ["create_definition"]
        assert exc.value.failed_step == "copy_values"
        keys = [c.column_key for c in registry.list()]
        assert len(keys) == 2
        assert any(k.startswith("a_copy_") for k in keys)


# ── Retype ──────────────────────────────────────────────────────────────────

class TestRetype:

    def test_retype_leaves_values_opaque(self, lifecycle, registry, values):
        lifecycle.create(_col("score", type="text"))
        eid = str(uuid.uuid4())
        values.upsert(eid, "score", "not a number")
        col = lifecycle.retype("score", "number")
        assert col.type == "number"
        assert values.get(eid, "score").value == "not a number"

    def test_retype_with_options(self, lifecycle):
        lifecycle.create(_col("stage", type="text", options={"x": 1}))
        col = lifecycle.retype("stage", "dropdown", {"choices": ["a"]})
        assert col.options == {"choices": ["a"]}

    def test_retype_keeps_options_when_omitted(self, lifecycle):
        lifecycle.create(_col("stage", type="text", options={"x": 1}))
        assert lifecycle.retype("stage", "status").options == {"x": 1}

    def test_retype_bad_type(self, lifecycle):
        lifecycle.create(_col("a"))
        with pytest.raises(ValidationError):
            lifecycle.retype("a", "currency")

    def test_retype_inactive(self, lifecycle):
        lifecycle.create(_col("a"))
        lifecycle.soft_delete("a")
        with pytest.raises(ValidationError):
            lifecycle.retype("a", "number")

    def test_retype_missing(self, lifecycle):
        with pytest.raises(ColumnNotFound):
            lifecycle.retype("ghost", "number")


# ── Reorder ─────────────────────────────────────────────────────────────────

class TestReorder:

    def test_partial_failure_still_applies_others(self, lifecycle, registry):
        lifecycle.create(_col("notes", order=0))
        result = lifecycle.reorder([
            {"id": "budget", "order": 5},
            {"id": "notes", "order": 1},
        ])
        assert registry.get("notes").order == 1
        assert result.succeeded == 1
        assert result.failed == 1
        by_id = {r["id"]: r for r in result.results}
        assert by_id["budget"]["success"] is False
        assert "not found" in by_id["budget"]["error"]
        assert by_id["notes"] == {"id": "notes", "success": True, "order": 1}

    def test_reorder_changes_listing(self, lifecycle, registry):
        for key in ("a", "b", "c"):
            lifecycle.create(_col(key))
        result = lifecycle.reorder([{"id": "a", "order": 9}, {"id": "c", "order": 0}])
        assert [c.column_key for c in result.columns] == ["c", "b", "a"]
        assert result.to_dict()["succeeded"] == 2

    def test_bad_items_reported(self, lifecycle):
        lifecycle.create(_col("a"))
        result = lifecycle.reorder([{"order": 1}, {"id": "a", "order": "x"}, "junk"])
        assert result.failed == 3

    def test_not_a_list(self, lifecycle):
        with pytest.raises(ValidationError):
            lifecycle.reorder({"id": "a"})


# ── Add to right ────────────────────────────────────────────────────────────

class TestAddToRight:

    def test_inserts_after_anchor_and_shifts(self, lifecycle, registry):
        for key in ("a", "b", "c"):
            lifecycle.create(_col(key))
        new = lifecycle.add_to_right("a", _col("inserted"))
        assert new.order == 1
        keys = [c.column_key for c in registry.list()]
        assert keys == ["a", "inserted", "b", "c"]
        orders = [c.order for c in registry.list()]
        assert orders == sorted(set(orders))

    def test_add_right_of_last(self, lifecycle, registry):
        lifecycle.create(_col("a"))
        lifecycle.create(_col("b"))
        assert lifecycle.add_to_right("b", _col("z")).order == 2

    def test_missing_anchor(self, lifecycle):
        with pytest.raises(ColumnNotFound):
            lifecycle.add_to_right("ghost", _col("z"))

    def test_invalid_definition_shifts_nothing(self, lifecycle, registry):
        lifecycle.create(_col("a"))
        lifecycle.create(_col("b"))
        with pytest.raises(ValidationError):
            lifecycle.add_to_right("a", _col("Bad Key"))
        with pytest.raises(DuplicateKey):
            lifecycle.add_to_right("a", _col("b"))
        assert [c.order for c in registry.list()] == [0, 1]


# ── Autofill ────────────────────────────────────────────────────────────────

class TestAutofill:

    def test_fill_all_entities(self, lifecycle, registry, values, make_donor):
        lifecycle.create(_col("region"))
        ids = [make_donor()["id"] for _ in range(4)]
        result = lifecycle.autofill("region", "North")
        assert result.count == 4
        assert result.failed == 0
        stored = values.get_for_entities(ids)
        assert all(stored[eid] == {"region": "North"} for eid in ids)

    def test_fill_explicit_ids_reports_unknown(self, lifecycle, values, make_donor):
        lifecycle.create(_col("region"))
        a = make_donor()["id"]
        b = make_donor()["id"]
        ghost = str(uuid.uuid4())
        result = lifecycle.autofill("region", "East", [a, ghost, "garbage"])
        assert result.count == 1
        assert result.failed == 2
        assert {f["id"] for f in result.failures} == {ghost, "garbage"}
        assert values.get_for_entities([a, b]) == {a: {"region": "East"}, b: {}}

    def test_overwrites_existing(self, lifecycle, values, make_donor):
        lifecycle.create(_col("region"))
        a = make_donor()["id"]
        values.upsert(a, "region", "West")
        lifecycle.autofill("region", "South")
        assert values.get(a, "region").value == "South"

    def test_zero_entities_is_not_an_error(self, lifecycle):
        lifecycle.create(_col("region"))
        result = lifecycle.autofill("region", "x")
        assert result.to_dict() == {
            "column_key": "region", "count": 0, "failed": 0, "failures": [],
        }

    def test_missing_column_fails_regardless_of_entities(self, lifecycle):
        with pytest.raises(ColumnNotFound):
            lifecycle.autofill("ghost", "x")
        with pytest.raises(ColumnNotFound):
            lifecycle.autofill("ghost", "x", [])

    def test_inactive_column_rejected(self, lifecycle):
        lifecycle.create(_col("region"))
        lifecycle.soft_delete("region")
        with pytest.raises(ColumnNotFound):
            lifecycle.autofill("region", "x")
