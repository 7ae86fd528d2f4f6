"""
Column lifecycle: state machine and multi-step column operations.

Each column moves through a small declarative state machine:

    active ⇄ inactive
    active | inactive → deleted   (permanent, cascades values)

    from fieldstore.lifecycle import ColumnLifecycle

    ColumnLifecycle.validate_transition("inactive", "active")   # ok
    ColumnLifecycle.validate_transition("deleted", "active")    # InvalidTransition

ColumnLifecycleManager builds the user-facing operations (create, soft
delete, restore, permanent delete, duplicate, retype, reorder, add-to-right,
autofill) on top of ColumnRegistry and ValueStore.

Operations made of several dependent writes (duplicate, add-to-right) run
as an ordered Pipeline of steps. A failure after the first step raises
PartialFailure listing what is already persisted; the caller retries the
failed step or cleans up. Batch operations (reorder, autofill) apply each
item independently and report per-item outcomes instead of aborting.
"""

import dataclasses
import time
from dataclasses import dataclass, field
from typing import Optional

from fieldstore.entities import parse_entity_id
from fieldstore.errors import (
    DuplicateKey, FieldStoreError, InvalidTransition, PartialFailure,
    ValidationError,
)
from fieldstore.logging import get_logger
from fieldstore.models import (
    COLUMN_TYPES, ColumnDefinition, validate_definition,
)

logger = get_logger(__name__)


# ── State machine ─────────────────────────────────────────────────────

@dataclass
class Transition:
    """A single state machine edge."""
    from_state: str
    to_state: str


class StateMachine:
    """
    Base class for declarative state machines.

    Subclass and define:
        initial: str                    the starting state
        transitions: list[Transition]   list of Transition edges
    """

    initial: str = None
    transitions: list = []

    @classmethod
    def get_transition(cls, from_state, to_state):
        """Return the Transition object for this edge, or None."""
        for t in cls.transitions:
            if t.from_state == from_state and t.to_state == to_state:
                return t
        return None

    @classmethod
    def validate_transition(cls, from_state, to_state):
        """Return the Transition object or raise InvalidTransition."""
        t = cls.get_transition(from_state, to_state)
        if t is None:
            raise InvalidTransition(
                from_state, to_state, cls.allowed_transitions(from_state),
            )
        return t

    @classmethod
    def allowed_transitions(cls, from_state):
        """Return list of valid next state names from from_state."""
        return [t.to_state for t in cls.transitions if t.from_state == from_state]


class ColumnLifecycle(StateMachine):
    initial = "active"
    transitions = [
        Transition("active", "inactive"),
        Transition("inactive", "active"),
        Transition("active", "deleted"),
        Transition("inactive", "deleted"),
    ]


# ── Step pipeline ─────────────────────────────────────────────────────

class Pipeline:
    """
    Ordered steps of one logical operation, run without a transaction.

        pipeline = Pipeline("duplicate column")
        pipeline.step("create_definition", lambda: registry.create(copy))
        pipeline.step("copy_values", lambda: values.copy_column(src, dst))
        results = pipeline.run()
    """

    def __init__(self, operation):
        self.operation = operation
        self.steps = []

    def step(self, name, fn):
        self.steps.append((name, fn))
        return self

    def run(self) -> dict:
        """Run every step in order. Returns {step name: result}.

        An error in the first step propagates unchanged (nothing was
        applied). Errors in later steps are wrapped in PartialFailure.
        """
        results = {}
        completed = []
        for name, fn in self.steps:
            try:
                results[name] = fn()
            except Exception as exc:
                if not completed:
                    raise
                logger.error(
                    "pipeline_step_failed", operation=self.operation,
                    step=name, completed_steps=completed, error=str(exc),
                )
                raise PartialFailure(self.operation, completed, name, exc) from exc
            completed.append(name)
        return results


# ── Results ───────────────────────────────────────────────────────────

@dataclass
class ReorderResult:
    results: list = field(default_factory=list)
    columns: list = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r["success"])

    @property
    def failed(self) -> int:
        return len(self.results) - self.succeeded

    def to_dict(self) -> dict:
        return {
            "results": self.results,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "columns": [c.to_dict() for c in self.columns],
        }


@dataclass
class AutofillResult:
    column_key: str
    count: int = 0
    failures: list = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failures)

    def to_dict(self) -> dict:
        return {
            "column_key": self.column_key,
            "count": self.count,
            "failed": self.failed,
            "failures": self.failures,
        }


@dataclass
class DuplicateResult:
    column: ColumnDefinition
    source_key: str
    values_copied: int

    def to_dict(self) -> dict:
        d = self.column.to_dict()
        d["sourceKey"] = self.source_key
        d["valuesCopied"] = self.values_copied
        return d


# Sentinel for "options not supplied" on retype
_UNSET = object()


# ── Manager ───────────────────────────────────────────────────────────

class ColumnLifecycleManager:
    """
    Column operations that keep definitions, ordering and values consistent.

    ``entities`` and ``entity_cls`` are only needed to autofill "all
    entities" and to check explicit entity ids.
    """

    def __init__(self, registry, values, entities=None, entity_cls=None):
        self.registry = registry
        self.values = values
        self.entities = entities
        self.entity_cls = entity_cls

    # ── Create / update ───────────────────────────────────────────────

    def create(self, defn: ColumnDefinition) -> ColumnDefinition:
        return self.registry.create(defn)

    def update(self, key, changes) -> ColumnDefinition:
        """Partial update; a change of ``is_active`` goes through the
        state machine."""
        if "is_active" in changes:
            col = self.registry.get(key)
            target = "active" if changes["is_active"] is True else "inactive"
            if target != col.state:
                ColumnLifecycle.validate_transition(col.state, target)
        return self.registry.update(key, changes)

    # ── State changes ─────────────────────────────────────────────────

    def _move(self, key, target):
        col = self.registry.get(key)
        if col.state == target:
            return col
        ColumnLifecycle.validate_transition(col.state, target)
        col = self.registry.set_active(key, target == "active")
        logger.info("column_state_changed", column_key=key, state=target)
        return col

    def soft_delete(self, key) -> ColumnDefinition:
        """Mark a column inactive; its values are kept. No-op if already
        inactive."""
        return self._move(key, "inactive")

    def restore(self, key) -> ColumnDefinition:
        """Reactivate a soft-deleted column. No-op if already active."""
        return self._move(key, "active")

    def delete(self, key, permanent=False) -> ColumnDefinition:
        """Soft delete, or with ``permanent`` remove the definition and
        every value under it."""
        if not permanent:
            return self.soft_delete(key)
        col = self.registry.get(key)
        ColumnLifecycle.validate_transition(col.state, "deleted")
        return self.registry.delete(key, cascade=True)

    # ── Multi-step operations ─────────────────────────────────────────

    def duplicate(self, key) -> DuplicateResult:
        """Copy a column definition and all its values under a new key.

        The copy is placed at ``source.order + 1``; other columns are not
        shifted, so it may tie with a neighbour (ties break by creation
        time).
        """
        source = self.registry.get(key)
        new_key = f"{source.column_key}_copy_{int(time.time() * 1000)}"
        copy = ColumnDefinition(
            column_key=new_key,
            title=f"{source.title} (Copy)"[:100],
            type=source.type,
            options=source.options,
            width=source.width,
            order=source.order + 1,
            is_required=source.is_required,
            is_active=True,
        )

        pipeline = Pipeline(f"duplicate column '{key}'")
        pipeline.step("create_definition", lambda: self.registry.create(copy))
        pipeline.step("copy_values", lambda: self.values.copy_column(key, new_key))
        results = pipeline.run()

        logger.info(
            "column_duplicated", source_key=key, column_key=new_key,
            values_copied=results["copy_values"],
        )
        return DuplicateResult(
            column=results["create_definition"], source_key=key,
            values_copied=results["copy_values"],
        )

    def add_to_right(self, anchor_key, defn: ColumnDefinition) -> ColumnDefinition:
        """Insert a new column immediately after ``anchor_key``.

        Every column ordered after the anchor moves up by one before the
        insert, so the new column never collides with an existing order.
        """
        anchor = self.registry.get(anchor_key)
        target_order = anchor.order + 1
        # reject bad input before anything is shifted
        probe = validate_definition(dataclasses.replace(defn, order=target_order))
        if self.registry.has(probe.column_key):
            raise DuplicateKey(
                "Column with this key already exists",
                {"column_key": probe.column_key},
            )

        pipeline = Pipeline(f"add column right of '{anchor_key}'")
        pipeline.step(
            "shift_orders",
            lambda: self.registry.shift_orders_after(anchor.order),
        )
        pipeline.step("create_column", lambda: self.registry.create(probe))
        results = pipeline.run()

        logger.info(
            "column_added_right", anchor_key=anchor_key,
            column_key=probe.column_key, order=target_order,
            shifted=results["shift_orders"],
        )
        return results["create_column"]

    def retype(self, key, new_type, options=_UNSET) -> ColumnDefinition:
        """Change an active column's type (and optionally options) in place.

        Existing values are left exactly as stored, even when they no
        longer match the new type.
        """
        if new_type not in COLUMN_TYPES:
            raise ValidationError.for_field(
                "type", f"must be one of {list(COLUMN_TYPES)}"
            )
        col = self.registry.get(key)
        if not col.is_active:
            raise ValidationError.for_field(
                "column_key", f"Column '{key}' is inactive"
            )
        changes = {"type": new_type}
        if options is not _UNSET:
            changes["options"] = options
        updated = self.registry.update(key, changes)
        logger.info(
            "column_retyped", column_key=key, from_type=col.type, to_type=new_type,
        )
        return updated

    # ── Batch operations ──────────────────────────────────────────────

    def reorder(self, items) -> ReorderResult:
        """Apply each ``{id, order}`` pair independently.

        A failing item is reported and does not stop the rest.
        """
        if not isinstance(items, (list, tuple)):
            raise ValidationError.for_field("columnOrders", "columnOrders must be an array")

        result = ReorderResult()
        for i, item in enumerate(items):
            key = item.get("id") if isinstance(item, dict) else None
            try:
                if not isinstance(key, str) or not key:
                    raise ValidationError.for_field(f"columnOrders[{i}].id", "id is required")
                order = item.get("order")
                self.registry.update(key, {"order": order})
                result.results.append({"id": key, "success": True, "order": order})
            except FieldStoreError as exc:
                logger.warning("column_reorder_failed", column_key=key, error=exc.message)
                result.results.append({"id": key, "success": False, "error": exc.message})

        result.columns = self.registry.list()
        logger.info(
            "columns_reordered", succeeded=result.succeeded, failed=result.failed,
        )
        return result

    def autofill(self, key, value, entity_ids: Optional[list] = None) -> AutofillResult:
        """Write ``value`` under ``key`` for every targeted entity.

        ``entity_ids`` None means every entity of the configured type.
        Unknown or malformed ids are reported as failures. Raises
        ColumnNotFound if the column is absent or inactive, regardless of
        how many entities are targeted.
        """
        self.registry.get_active(key)
        result = AutofillResult(column_key=key)

        if entity_ids is None:
            targets = self.entities.ids(self.entity_cls)
        else:
            if not isinstance(entity_ids, (list, tuple)):
                raise ValidationError.for_field("donor_ids", "must be a list")
            existing = self.entities.existing_ids(self.entity_cls, entity_ids)
            targets = []
            for eid in entity_ids:
                canonical = parse_entity_id(eid)
                if canonical in existing:
                    targets.append(canonical)
                else:
                    result.failures.append({"id": eid, "error": "Entity not found"})

        for eid in targets:
            try:
                self.values.upsert(eid, key, value)
                result.count += 1
            except FieldStoreError as exc:
                logger.warning(
                    "column_autofill_failed", column_key=key, entity_id=eid,
                    error=exc.message,
                )
                result.failures.append({"id": eid, "error": exc.message})

        logger.info(
            "column_autofilled", column_key=key, count=result.count,
            failed=result.failed,
        )
        return result
