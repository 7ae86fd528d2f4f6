"""
Predicate tree for entity filtering.

Value nodes reference either a base field of the entity document or a
dynamic column value; predicate nodes combine them with literals. Every
node compiles to a PostgreSQL fragment through ``to_sql(params)``, which
appends bind parameters to ``params`` and returns SQL containing ``%s``
placeholders. Literal values never appear in the SQL text.

Operator overloading builds compound predicates:

    (Compare("=", DocField("status"), "active") & ~IsEmpty(DocField("email")))
"""

import json
from abc import ABC, abstractmethod

from psycopg2.extras import Json


# ---------------------------------------------------------------------------
# Value references
# ---------------------------------------------------------------------------

class ValueRef(ABC):
    """A JSONB-valued field of the row being filtered."""

    # "number", "boolean", "text" or "any"
    kind = "any"

    @abstractmethod
    def json_sql(self, params: list) -> str:
        """Fragment evaluating to the field's JSONB value (NULL if absent)."""

    def text_sql(self, params: list) -> str:
        """Fragment evaluating to the field's value as text."""
        return f"({self.json_sql(params)} #>> '{{}}')"

    def __repr__(self):
        return f"{self.__class__.__name__}({self.name!r})"


class DocField(ValueRef):
    """A base field inside the entity's JSONB document."""

    def __init__(self, name: str, kind: str = "any", col: str = "e.data"):
        self.name = name
        self.kind = kind
        self.col = col

    def json_sql(self, params: list) -> str:
        params.append(self.name)
        return f"({self.col} -> %s)"

    def text_sql(self, params: list) -> str:
        params.append(self.name)
        return f"({self.col} ->> %s)"


class ColumnField(ValueRef):
    """A dynamic column value looked up in the value side table."""

    def __init__(self, name: str, kind: str = "any", entity_col: str = "e.entity_id"):
        self.name = name
        self.kind = kind
        self.entity_col = entity_col

    def json_sql(self, params: list) -> str:
        params.append(self.name)
        return (
            "(SELECT v.value FROM column_values v "
            f"WHERE v.entity_id = {self.entity_col} AND v.column_key = %s)"
        )


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------

class Predicate(ABC):
    """Abstract predicate node. Compiles to a boolean SQL expression."""

    @abstractmethod
    def to_sql(self, params: list) -> str:
        """Compile to a PostgreSQL boolean fragment, appending binds."""

    @abstractmethod
    def to_json(self) -> dict:
        """Serialize to a JSON-compatible dict."""

    def __and__(self, other):
        return And([self, other])

    def __invert__(self):
        return Not(self)

    def __repr__(self):
        return f"{self.__class__.__name__}({json.dumps(self.to_json(), default=str)})"


class TrueExpr(Predicate):
    """Matches every row."""

    def to_sql(self, params: list) -> str:
        return "TRUE"

    def to_json(self) -> dict:
        return {"type": "True"}

    def __and__(self, other):
        return other


_COMPARE_OPS = {
    "=": "=", "!=": "IS DISTINCT FROM",
    ">": ">", ">=": ">=", "<": "<", "<=": "<=",
}
_ORDERING_OPS = (">", ">=", "<", "<=")


class Compare(Predicate):
    """JSONB comparison: numbers compare numerically, strings lexically.

    Ordering operators never match a value of another JSON type, so null
    or a string stored under a numeric column fails ``<`` and ``>`` alike.
    """

    def __init__(self, op: str, field: ValueRef, value):
        if op not in _COMPARE_OPS:
            raise ValueError(f"Unknown comparison op: {op}")
        self.op = op
        self.field = field
        self.value = value

    def to_sql(self, params: list) -> str:
        if self.op in _ORDERING_OPS:
            return self._ordering_sql(params)
        f_sql = self.field.json_sql(params)
        if self.value is None:
            # absent and JSON null are the same "no value"
            null_sql = f"COALESCE({f_sql} = 'null'::jsonb, TRUE)"
            return null_sql if self.op == "=" else f"(NOT {null_sql})"
        params.append(Json(self.value))
        return f"({f_sql} {_COMPARE_OPS[self.op]} %s::jsonb)"

    def _ordering_sql(self, params: list) -> str:
        # JSONB orders across types (number < boolean, null < string, ...);
        # only values of the literal's own type may match
        if self.value is None:
            return "FALSE"
        type_sql = self.field.json_sql(params)
        params.append(Json(self.value))
        f_sql = self.field.json_sql(params)
        params.append(Json(self.value))
        return (
            f"COALESCE(jsonb_typeof({type_sql}) = jsonb_typeof(%s::jsonb) "
            f"AND {f_sql} {_COMPARE_OPS[self.op]} %s::jsonb, FALSE)"
        )

    def to_json(self) -> dict:
        return {"type": "Compare", "op": self.op, "field": self.field.name,
                "value": self.value}


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class TextMatch(Predicate):
    """Case-insensitive substring / prefix / suffix match."""

    MODES = ("contains", "starts_with", "ends_with")

    def __init__(self, mode: str, field: ValueRef, text):
        if mode not in self.MODES:
            raise ValueError(f"Unknown text match mode: {mode}")
        self.mode = mode
        self.field = field
        self.text = "" if text is None else str(text)

    def pattern(self) -> str:
        escaped = _escape_like(self.text)
        if self.mode == "contains":
            return f"%{escaped}%"
        if self.mode == "starts_with":
            return f"{escaped}%"
        return f"%{escaped}"

    def to_sql(self, params: list) -> str:
        f_sql = self.field.text_sql(params)
        params.append(self.pattern())
        # NULL means no match, so NOT(...) keeps rows without a value
        return f"COALESCE({f_sql} ILIKE %s ESCAPE '\\', FALSE)"

    def to_json(self) -> dict:
        return {"type": "TextMatch", "mode": self.mode,
                "field": self.field.name, "text": self.text}


class IsEmpty(Predicate):
    """Field is absent, JSON null, or the empty string."""

    def __init__(self, field: ValueRef):
        self.field = field

    def to_sql(self, params: list) -> str:
        f_sql = self.field.json_sql(params)
        return (
            f"COALESCE({f_sql} IN ('null'::jsonb, '\"\"'::jsonb), TRUE)"
        )

    def to_json(self) -> dict:
        return {"type": "IsEmpty", "field": self.field.name}


class InSet(Predicate):
    """Membership of the field's JSONB value in a literal set."""

    def __init__(self, field: ValueRef, values):
        self.field = field
        self.values = list(values)

    def to_sql(self, params: list) -> str:
        f_sql = self.field.json_sql(params)
        params.append(Json(self.values))
        return (
            f"COALESCE({f_sql} IN "
            f"(SELECT jsonb_array_elements(%s::jsonb)), FALSE)"
        )

    def to_json(self) -> dict:
        return {"type": "InSet", "field": self.field.name, "values": self.values}


class Not(Predicate):
    def __init__(self, operand: Predicate):
        self.operand = operand

    def to_sql(self, params: list) -> str:
        return f"(NOT {self.operand.to_sql(params)})"

    def to_json(self) -> dict:
        return {"type": "Not", "operand": self.operand.to_json()}


class And(Predicate):
    """Conjunction; nested Ands are flattened."""

    def __init__(self, operands: list):
        flat = []
        for op in operands:
            if isinstance(op, TrueExpr):
                continue
            if isinstance(op, And):
                flat.extend(op.operands)
            else:
                flat.append(op)
        self.operands = flat

    def to_sql(self, params: list) -> str:
        if not self.operands:
            return "TRUE"
        return "(" + " AND ".join(o.to_sql(params) for o in self.operands) + ")"

    def to_json(self) -> dict:
        return {"type": "And", "operands": [o.to_json() for o in self.operands]}
