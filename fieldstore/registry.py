"""
Column Registry: the catalog of dynamic column definitions.

Each instance wraps one connection and is passed explicitly to the
services that need it; there is no process-wide registry.

Listing order is (order asc, created_at asc). Order values need not be
contiguous. Inactive (soft-deleted) columns are hidden unless asked for.
"""

import dataclasses

from psycopg2.extras import Json

from fieldstore.db import cursor, transaction
from fieldstore.errors import ColumnNotFound, DuplicateKey
from fieldstore.logging import get_logger
from fieldstore.models import (
    ColumnDefinition, validate_definition, validate_update,
)

logger = get_logger(__name__)

_SELECT = """
    SELECT column_key, title, type, options, width, sort_order,
           is_required, is_active, created_at, updated_at
    FROM column_definitions
"""

# Python attribute → database column
_DB_COLUMNS = {
    "title": "title",
    "type": "type",
    "options": "options",
    "width": "width",
    "order": "sort_order",
    "is_required": "is_required",
    "is_active": "is_active",
}


class ColumnRegistry:
    """
    Persistent catalog of ColumnDefinitions.

    ``values`` is the ValueStore used for cascading permanent deletes.
    """

    def __init__(self, conn, values=None):
        self.conn = conn
        self.values = values

    # ── Lookup ────────────────────────────────────────────────────────

    def list(self, include_inactive=False):
        """All definitions sorted by (order, created_at)."""
        sql = _SELECT
        if not include_inactive:
            sql += " WHERE is_active"
        sql += " ORDER BY sort_order ASC, created_at ASC, column_key ASC"
        with cursor(self.conn, "list columns") as cur:
            cur.execute(sql)
            return [ColumnDefinition.from_row(r) for r in cur.fetchall()]

    def find(self, key):
        """Return the definition for ``key`` or None."""
        with cursor(self.conn, "get column") as cur:
            cur.execute(_SELECT + " WHERE column_key = %s", (key,))
            row = cur.fetchone()
        return ColumnDefinition.from_row(row) if row else None

    def get(self, key):
        """Return the definition for ``key``.

        Raises ColumnNotFound if absent.
        """
        col = self.find(key)
        if col is None:
            raise ColumnNotFound(key)
        return col

    def get_active(self, key):
        """Like get(), but an inactive column counts as absent."""
        col = self.find(key)
        if col is None or not col.is_active:
            raise ColumnNotFound(key, f"Column '{key}' not found or inactive")
        return col

    def has(self, key):
        return self.find(key) is not None

    def max_order(self):
        """Highest order across all columns, or None when empty."""
        with cursor(self.conn, "max column order") as cur:
            cur.execute("SELECT MAX(sort_order) FROM column_definitions")
            return cur.fetchone()[0]

    # ── Mutations ─────────────────────────────────────────────────────

    def create(self, defn):
        """Register a new column.

        Raises ValidationError for a malformed definition and DuplicateKey
        if the key is taken. When ``order`` is None the column is appended
        after the current maximum (0 for an empty registry).
        """
        defn = validate_definition(defn)
        if self.has(defn.column_key):
            raise DuplicateKey(
                "Column with this key already exists",
                {"column_key": defn.column_key},
            )

        if defn.order is None:
            current = self.max_order()
            defn = dataclasses.replace(
                defn, order=0 if current is None else current + 1,
            )

        with cursor(self.conn, "create column") as cur:
            cur.execute(
                """
                INSERT INTO column_definitions
                    (column_key, title, type, options, width, sort_order,
                     is_required, is_active)
                VALUES (%s, %s, %s, %s::jsonb, %s, %s, %s, %s)
                RETURNING column_key, title, type, options, width, sort_order,
                          is_required, is_active, created_at, updated_at
                """,
                (defn.column_key, defn.title, defn.type, Json(defn.options),
                 defn.width, defn.order, defn.is_required, defn.is_active),
            )
            col = ColumnDefinition.from_row(cur.fetchone())
        logger.info("column_created", column_key=col.column_key, order=col.order)
        return col

    def update(self, key, changes):
        """Merge the supplied fields into an existing definition.

        Raises ColumnNotFound if absent, ValidationError for bad fields or
        an attempt to change column_key.
        """
        changes = validate_update(changes)
        if not changes:
            return self.get(key)

        assignments = []
        params = []
        for name, value in changes.items():
            column = _DB_COLUMNS[name]
            if name == "options":
                assignments.append(f"{column} = %s::jsonb")
                params.append(Json(value))
            else:
                assignments.append(f"{column} = %s")
                params.append(value)
        assignments.append("updated_at = clock_timestamp()")
        params.append(key)

        with cursor(self.conn, "update column") as cur:
            cur.execute(
                f"""
                UPDATE column_definitions SET {", ".join(assignments)}
                WHERE column_key = %s
                RETURNING column_key, title, type, options, width, sort_order,
                          is_required, is_active, created_at, updated_at
                """,
                params,
            )
            row = cur.fetchone()
        if row is None:
            raise ColumnNotFound(key)
        logger.info("column_updated", column_key=key, fields=sorted(changes))
        return ColumnDefinition.from_row(row)

    def set_active(self, key, active):
        """Soft delete (False) or restore (True)."""
        return self.update(key, {"is_active": bool(active)})

    def shift_orders_after(self, order, by=1):
        """Add ``by`` to the order of every column whose order exceeds
        ``order``. Returns the number of columns moved."""
        with cursor(self.conn, "shift column orders") as cur:
            cur.execute(
                """
                UPDATE column_definitions
                SET sort_order = sort_order + %s, updated_at = clock_timestamp()
                WHERE sort_order > %s
                """,
                (by, order),
            )
            return cur.rowcount

    def delete(self, key, cascade=False):
        """Remove a definition.

        With ``cascade`` every value under the key is removed in the same
        transaction. Without it the values are left for lazy cleanup; they
        never resurface because reads only ask for registered keys.
        Returns the deleted definition.
        """
        if cascade and self.values is None:
            raise RuntimeError("cascade delete requires a ValueStore")

        with transaction(self.conn):
            with cursor(self.conn, "delete column") as cur:
                cur.execute(
                    """
                    DELETE FROM column_definitions WHERE column_key = %s
                    RETURNING column_key, title, type, options, width,
                              sort_order, is_required, is_active,
                              created_at, updated_at
                    """,
                    (key,),
                )
                row = cur.fetchone()
            if row is None:
                raise ColumnNotFound(key)
            removed = self.values.delete_for_column(key) if cascade else 0

        logger.info(
            "column_deleted", column_key=key, cascade=cascade,
            values_removed=removed,
        )
        return ColumnDefinition.from_row(row)
