"""
EntityQueryService: filtered, sorted, paginated reads of base entities
with their dynamic column values merged in.

A query runs in four steps:

  1. translate the filter clauses into a predicate
  2. count the matching entities
  3. fetch the requested page, sorted on a base field
  4. load custom values for exactly the ids on that page and merge

Only currently registered column keys are read back, so values orphaned by
a non-cascading column delete never resurface.
"""

import math
from dataclasses import dataclass, field
from typing import Any

from fieldstore.db import cursor
from fieldstore.entities import EntityStore
from fieldstore.errors import EntityNotFound, ValidationError
from fieldstore.logging import get_logger
from filters.expr import ColumnField, DocField, TextMatch
from filters.translator import parse_filters, translate

logger = get_logger(__name__)

# Wire name → entities table column
_TIMESTAMP_COLUMNS = {
    "created_at": "e.created_at",
    "createdAt": "e.created_at",
    "updated_at": "e.updated_at",
    "updatedAt": "e.updated_at",
}

# Column type → comparison kind used by the translator
_COLUMN_KINDS = {"number": "number", "checkbox": "boolean"}


@dataclass
class QueryPage:
    """One page of merged entities plus pagination metadata."""

    items: list
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.total else 0

    def pagination(self) -> dict:
        return {
            "page": self.page,
            "limit": self.limit,
            "total": self.total,
            "totalPages": self.total_pages,
        }

    def __iter__(self):
        return iter(self.items)

    def __len__(self):
        return len(self.items)


@dataclass
class Group:
    """Entities sharing one value of the grouped field."""

    value: Any
    count: int
    items: list = field(default_factory=list)

    def to_dict(self, items_key="items") -> dict:
        return {"value": self.value, "count": self.count, items_key: self.items}


def _check_int(name, value, minimum, maximum=None):
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError.for_field(name, "must be an integer")
    if value < minimum or (maximum is not None and value > maximum):
        bound = f"between {minimum} and {maximum}" if maximum else f">= {minimum}"
        raise ValidationError.for_field(name, f"must be {bound}")


def _sort_direction(order):
    direction = str(order or "asc").lower()
    if direction not in ("asc", "desc"):
        raise ValidationError.for_field("order", "must be 'asc' or 'desc'")
    return direction.upper()


class EntityQueryService:
    """
    Reads entities of one Storable class together with their custom values.

    Usage:
        service = EntityQueryService(conn, Donor, registry, values)
        page = service.query(
            filters=[{"field": "status", "operator": "equals", "value": "active"}],
            page=1, limit=10,
        )
        page.items[0]["customFields"]
    """

    def __init__(self, conn, cls, registry, values, entities=None,
                 default_page_size=10, max_page_size=100):
        self.conn = conn
        self.cls = cls
        self.registry = registry
        self.values = values
        self.entities = entities or EntityStore(conn)
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size

    # ── Field resolution ──────────────────────────────────────────────

    def filterable_fields(self, include_inactive=False) -> dict:
        """Name → ValueRef for every field a filter clause may reference."""
        fields = {
            name: DocField(name, kind)
            for name, kind in self.cls.field_kinds().items()
        }
        for col in self.registry.list(include_inactive=include_inactive):
            # base fields win on a name clash
            fields.setdefault(
                col.column_key,
                ColumnField(col.column_key, _COLUMN_KINDS.get(col.type, "any")),
            )
        return fields

    def _sort_sql(self, sort_by, order, params):
        direction = _sort_direction(order)
        if sort_by is None:
            return f"e.created_at {direction}, e.entity_id {direction}"
        if sort_by in _TIMESTAMP_COLUMNS:
            column = _TIMESTAMP_COLUMNS[sort_by]
        elif sort_by in self.cls.field_names():
            params.append(sort_by)
            column = "(e.data -> %s)"
        else:
            raise ValidationError.for_field(
                "sort_by", f"cannot sort by '{sort_by}'"
            )
        return f"{column} {direction}, e.created_at ASC, e.entity_id ASC"

    def _search_sql(self, search, params):
        matches = [
            TextMatch("contains", DocField(name), search).to_sql(params)
            for name in self.cls._search_fields
        ]
        return "(" + " OR ".join(matches) + ")" if matches else "TRUE"

    def _where(self, filters, search, include_inactive, params):
        fields = self.filterable_fields(include_inactive)
        predicate = translate(parse_filters(filters), fields)
        params.append(self.cls.type_name())
        where = ["e.type_name = %s", predicate.to_sql(params)]
        if search:
            where.append(self._search_sql(search, params))
        return " AND ".join(where)

    # ── Reads ─────────────────────────────────────────────────────────

    def query(self, filters=None, sort_by=None, order="asc", page=1,
              limit=None, search=None, include_inactive=False) -> QueryPage:
        """Return one page of merged entities matching every filter clause.

        Raises ValidationError for unknown fields, bad paging or sort input.
        """
        limit = self.default_page_size if limit is None else limit
        _check_int("page", page, 1)
        _check_int("limit", limit, 1, self.max_page_size)

        where_params = []
        where = self._where(filters, search, include_inactive, where_params)

        with cursor(self.conn, f"count {self.cls.type_name()}") as cur:
            cur.execute(f"SELECT COUNT(*) FROM entities e WHERE {where}",
                        where_params)
            total = cur.fetchone()[0]

        params = list(where_params)
        order_sql = self._sort_sql(sort_by, order, params)
        params.extend([limit, (page - 1) * limit])
        with cursor(self.conn, f"query {self.cls.type_name()}") as cur:
            cur.execute(
                f"""
                SELECT e.entity_id, e.data, e.created_at, e.updated_at
                FROM entities e
                WHERE {where}
                ORDER BY {order_sql}
                LIMIT %s OFFSET %s
                """,
                params,
            )
            rows = cur.fetchall()

        objs = [self.entities.row_to_object(self.cls, r) for r in rows]
        items = self.merge(objs, include_inactive=include_inactive)
        logger.debug(
            "entities_queried", type_name=self.cls.type_name(),
            total=total, page=page, returned=len(items),
        )
        return QueryPage(items=items, page=page, limit=limit, total=total)

    def group_by(self, field_name, filters=None, include_inactive=False):
        """Group every matching entity by the value of one base field.

        JSON null and a missing field share the ``None`` group. Groups are
        ordered by descending count, then by value.
        """
        if not field_name:
            raise ValidationError.for_field("field", "Field is required for grouping")
        if field_name not in self.cls.field_names():
            raise ValidationError.for_field(
                "field", f"cannot group by '{field_name}'"
            )

        params = [field_name]
        where = self._where(filters, None, include_inactive, params)
        with cursor(self.conn, f"group {self.cls.type_name()}") as cur:
            cur.execute(
                f"""
                SELECT NULLIF(e.data -> %s, 'null'::jsonb) AS grp,
                       COUNT(*) AS n,
                       array_agg(e.entity_id ORDER BY e.created_at, e.entity_id)
                FROM entities e
                WHERE {where}
                GROUP BY grp
                ORDER BY n DESC, grp ASC NULLS LAST
                """,
                params,
            )
            rows = cur.fetchall()

        member_ids = [str(eid) for _, _, ids in rows for eid in ids]
        merged = {
            item["id"]: item
            for item in self.merge(
                self.entities.read_many(self.cls, member_ids),
                include_inactive=include_inactive,
            )
        }
        return [
            Group(value=value, count=count,
                  items=[merged[str(eid)] for eid in ids if str(eid) in merged])
            for value, count, ids in rows
        ]

    def get(self, entity_id, include_inactive=False) -> dict:
        """One merged entity. Raises EntityNotFound if absent."""
        obj = self.entities.read(self.cls, entity_id)
        if obj is None:
            raise EntityNotFound(entity_id, self.cls.__name__)
        return self.merge([obj], include_inactive=include_inactive)[0]

    # ── Merging ───────────────────────────────────────────────────────

    def merge(self, objs, include_inactive=False) -> list:
        """Attach ``customFields`` to each entity.

        Keys without a value are absent from ``customFields`` rather than null.
        """
        if not objs:
            return []
        keys = [c.column_key for c in self.registry.list(include_inactive)]
        values = self.values.get_for_entities(
            [o._store_entity_id for o in objs], column_keys=keys,
        )
        return [self.to_record(o, values[o._store_entity_id]) for o in objs]

    @staticmethod
    def to_record(obj, custom_fields) -> dict:
        record = {"id": obj._store_entity_id}
        record.update(obj.to_data())
        record["createdAt"] = obj._store_created_at
        record["updatedAt"] = obj._store_updated_at
        record["customFields"] = dict(custom_fields)
        return record
