"""
FilterTranslator: advanced filter clauses to a predicate tree.

Filters arrive as an ordered list of clauses
``{field, operator, value}``. Clauses are combined with AND; an empty list
matches everything. There is no OR or grouping.

Field names are resolved through a mapping supplied by the caller
(name → ValueRef), so translation itself holds no state and touches no
storage.

Operators:
    equals / is                        field == value
    not_equals / is_not                field != value (absent counts as different)
    contains / not_contains            case-insensitive substring (negated)
    starts_with / ends_with            case-insensitive prefix / suffix
    greater_than[_or_equal]            ordering comparison, same JSON type only
    less_than[_or_equal]               ordering comparison, same JSON type only
    is_empty / is_not_empty            null, "" or absent (and its complement)
    in / not_in                        membership; a scalar is a one-element set
    anything else                      exact equality against value

On numeric fields every operator except the text and emptiness ones coerces
its value (each member, for in / not_in) to a number.
"""

from dataclasses import dataclass
from typing import Any

from fieldstore.errors import ValidationError
from filters.expr import (
    Compare, InSet, IsEmpty, Predicate, TextMatch, TrueExpr, ValueRef,
)

_EQUALS = ("equals", "is")
_NOT_EQUALS = ("not_equals", "is_not")
_ORDERING = {
    "greater_than": ">",
    "greater_than_or_equal": ">=",
    "less_than": "<",
    "less_than_or_equal": "<=",
}
_TEXT = ("contains", "starts_with", "ends_with")

OPERATORS = (
    _EQUALS + _NOT_EQUALS + _TEXT + tuple(_ORDERING)
    + ("not_contains", "is_empty", "is_not_empty", "in", "not_in")
)


@dataclass
class FilterClause:
    """One ``{field, operator, value}`` predicate."""

    field: str
    operator: str
    value: Any = None

    @classmethod
    def from_dict(cls, raw, index=0) -> "FilterClause":
        where = f"filters[{index}]"
        if isinstance(raw, FilterClause):
            return raw
        if not isinstance(raw, dict):
            raise ValidationError.for_field(where, "must be an object")
        field = raw.get("field")
        if not isinstance(field, str) or not field.strip():
            raise ValidationError.for_field(f"{where}.field", "field is required")
        operator = raw.get("operator")
        if not isinstance(operator, str) or not operator:
            raise ValidationError.for_field(
                f"{where}.operator", "operator is required"
            )
        return cls(field=field.strip(), operator=operator, value=raw.get("value"))

    def to_dict(self) -> dict:
        return {"field": self.field, "operator": self.operator, "value": self.value}


def parse_filters(raw) -> list:
    """Validate a raw filter list (None means no filters)."""
    if raw is None:
        return []
    if not isinstance(raw, (list, tuple)):
        raise ValidationError.for_field("filters", "must be a list")
    return [FilterClause.from_dict(item, i) for i, item in enumerate(raw)]


def _as_number(value, where):
    if isinstance(value, bool):
        raise ValidationError.for_field(where, "must be a number")
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            pass
        try:
            return float(text)
        except ValueError:
            pass
    raise ValidationError.for_field(where, "must be a number")


def _coerce(ref, value, where):
    """Numeric fields compare against numbers; None stays "no value"."""
    if value is None or ref.kind != "number":
        return value
    return _as_number(value, where)


def translate_clause(clause: FilterClause, ref: ValueRef, where="value") -> Predicate:
    """Translate one clause against an already-resolved field."""
    op = clause.operator
    value = clause.value

    if op in _TEXT:
        return TextMatch(op, ref, value)
    if op == "not_contains":
        return ~TextMatch("contains", ref, value)
    if op == "is_empty":
        return IsEmpty(ref)
    if op == "is_not_empty":
        return ~IsEmpty(ref)
    if op in ("in", "not_in"):
        members = value if isinstance(value, (list, tuple)) else [value]
        members = [_coerce(ref, m, where) for m in members]
        pred = InSet(ref, members)
        return pred if op == "in" else ~pred

    value = _coerce(ref, value, where)
    if op in _NOT_EQUALS:
        return Compare("!=", ref, value)
    if op in _ORDERING:
        return Compare(_ORDERING[op], ref, value)
    # equals / is, and the fallback for unrecognised operators
    return Compare("=", ref, value)


def translate(clauses, fields: dict) -> Predicate:
    """Translate filter clauses into one AND-ed predicate.

    ``fields`` maps every filterable name to its ValueRef. A clause naming
    any other field raises ValidationError.
    """
    predicate = TrueExpr()
    for i, raw in enumerate(clauses or []):
        clause = FilterClause.from_dict(raw, i)
        ref = fields.get(clause.field)
        if ref is None:
            raise ValidationError.for_field(
                f"filters[{i}].field", f"unknown field '{clause.field}'"
            )
        predicate = predicate & translate_clause(
            clause, ref, where=f"filters[{i}].value",
        )
    return predicate
