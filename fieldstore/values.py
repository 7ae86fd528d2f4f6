"""
ValueStore: per-entity values for dynamic columns.

Values live in a sparse side table keyed by (entity_id, column_key) and are
stored as opaque JSONB: nothing here interprets a value against its
column's declared type. The store also does not consult the column
registry; callers that create values validate the column first, bulk-copy
paths deliberately skip that check.
"""

from psycopg2.extras import Json

from fieldstore.db import cursor
from fieldstore.entities import parse_entity_id
from fieldstore.models import ColumnValue


class ValueStore:
    """Reads and writes column values on a psycopg2 connection."""

    def __init__(self, conn):
        self.conn = conn

    # ── Reads ─────────────────────────────────────────────────────────

    def get_for_entities(self, entity_ids, column_keys=None):
        """Return {entity_id: {column_key: value}} for every requested id.

        Ids are keyed in canonical form; malformed ids are dropped. Entities
        without values map to an empty dict, never absent. When
        ``column_keys`` is given, only those keys are returned.
        """
        ids = [eid for eid in (parse_entity_id(e) for e in entity_ids) if eid]
        result = {eid: {} for eid in ids}
        if not ids:
            return result
        if column_keys is not None and not column_keys:
            return result

        sql = """
            SELECT entity_id, column_key, value FROM column_values
            WHERE entity_id = ANY(%s::uuid[])
        """
        params = [ids]
        if column_keys is not None:
            sql += " AND column_key = ANY(%s)"
            params.append(list(column_keys))
        sql += " ORDER BY entity_id, column_key"

        with cursor(self.conn, "get values") as cur:
            cur.execute(sql, params)
            for entity_id, column_key, value in cur.fetchall():
                result[str(entity_id)][column_key] = value
        return result

    def get(self, entity_id, column_key):
        """Return the ColumnValue for one pair, or None."""
        with cursor(self.conn, "get value") as cur:
            cur.execute(
                """
                SELECT entity_id, column_key, value, created_at, updated_at
                FROM column_values
                WHERE entity_id = %s AND column_key = %s
                """,
                (str(entity_id), column_key),
            )
            row = cur.fetchone()
        return self._row_to_value(row) if row else None

    def count_for_column(self, column_key):
        with cursor(self.conn, "count values") as cur:
            cur.execute(
                "SELECT COUNT(*) FROM column_values WHERE column_key = %s",
                (column_key,),
            )
            return cur.fetchone()[0]

    # ── Writes ────────────────────────────────────────────────────────

    def upsert(self, entity_id, column_key, value):
        """Create or overwrite the value for (entity_id, column_key).

        Last write wins; at most one row ever exists per pair.
        """
        with cursor(self.conn, "upsert value") as cur:
            cur.execute(
                """
                INSERT INTO column_values (entity_id, column_key, value)
                VALUES (%s, %s, %s::jsonb)
                ON CONFLICT (entity_id, column_key) DO UPDATE
                    SET value = EXCLUDED.value,
                        updated_at = clock_timestamp()
                RETURNING entity_id, column_key, value, created_at, updated_at
                """,
                (str(entity_id), column_key, Json(value)),
            )
            return self._row_to_value(cur.fetchone())

    def copy_column(self, from_key, to_key):
        """Copy every value under ``from_key`` to ``to_key`` for the same
        entities. Returns the number of rows written. Idempotent."""
        with cursor(self.conn, "copy column values") as cur:
            cur.execute(
                """
                INSERT INTO column_values (entity_id, column_key, value)
                SELECT entity_id, %s, value FROM column_values
                WHERE column_key = %s
                ON CONFLICT (entity_id, column_key) DO UPDATE
                    SET value = EXCLUDED.value,
                        updated_at = clock_timestamp()
                """,
                (to_key, from_key),
            )
            return cur.rowcount

    def delete_for_entity(self, entity_id):
        """Remove all values of an entity. Returns rows deleted (0 is fine)."""
        with cursor(self.conn, "delete entity values") as cur:
            cur.execute(
                "DELETE FROM column_values WHERE entity_id = %s",
                (str(entity_id),),
            )
            return cur.rowcount

    def delete_for_column(self, column_key):
        """Remove all values under a column. Returns rows deleted (0 is fine)."""
        with cursor(self.conn, "delete column values") as cur:
            cur.execute(
                "DELETE FROM column_values WHERE column_key = %s",
                (column_key,),
            )
            return cur.rowcount

    # ── Internal helpers ──────────────────────────────────────────────

    @staticmethod
    def _row_to_value(row):
        entity_id, column_key, value, created_at, updated_at = row
        return ColumnValue(
            entity_id=str(entity_id), column_key=column_key, value=value,
            created_at=created_at, updated_at=updated_at,
        )
