"""
Database schema: entity documents, dynamic column definitions and the
sparse (entity_id, column_key) → value side table.

All DDL is idempotent and can be re-run on every start.
"""

from fieldstore.db import cursor

TABLES = ("column_values", "column_definitions", "entities")


def bootstrap_schema(conn):
    """Create tables and indexes. Idempotent."""
    with cursor(conn, "bootstrap schema") as cur:
        # ── Base entities: one JSONB document per entity ─────────────
        cur.execute("""
            CREATE TABLE IF NOT EXISTS entities (
                entity_id   UUID PRIMARY KEY DEFAULT gen_random_uuid(),
                type_name   TEXT NOT NULL,
                data        JSONB NOT NULL,
                created_at  TIMESTAMPTZ NOT NULL DEFAULT clock_timestamp(),
                updated_at  TIMESTAMPTZ NOT NULL DEFAULT clock_timestamp()
            );
        """)
        cur.execute("""
            CREATE INDEX IF NOT EXISTS idx_entities_type_created
                ON entities (type_name, created_at);
        """)
        cur.execute("""
            CREATE INDEX IF NOT EXISTS idx_entities_data
                ON entities USING GIN (data);
        """)

        # ── Dynamic column definitions ───────────────────────────────
        cur.execute("""
            CREATE TABLE IF NOT EXISTS column_definitions (
                column_key   TEXT PRIMARY KEY
                             CHECK (column_key ~ '^[a-z0-9_]+$'),
                title        TEXT NOT NULL CHECK (title <> ''),
                type         TEXT NOT NULL DEFAULT 'text',
                options      JSONB,
                width        INT NOT NULL DEFAULT 150 CHECK (width > 0),
                sort_order   INT NOT NULL DEFAULT 0,
                is_required  BOOLEAN NOT NULL DEFAULT FALSE,
                is_active    BOOLEAN NOT NULL DEFAULT TRUE,
                created_at   TIMESTAMPTZ NOT NULL DEFAULT clock_timestamp(),
                updated_at   TIMESTAMPTZ NOT NULL DEFAULT clock_timestamp()
            );
        """)
        cur.execute("""
            CREATE INDEX IF NOT EXISTS idx_column_definitions_order
                ON column_definitions (sort_order, created_at);
        """)

        # ── Column values: sparse side table, no FKs (lazy cleanup) ──
        cur.execute("""
            CREATE TABLE IF NOT EXISTS column_values (
                entity_id   UUID NOT NULL,
                column_key  TEXT NOT NULL,
                value       JSONB,
                created_at  TIMESTAMPTZ NOT NULL DEFAULT clock_timestamp(),
                updated_at  TIMESTAMPTZ NOT NULL DEFAULT clock_timestamp(),
                PRIMARY KEY (entity_id, column_key)
            );
        """)
        cur.execute("""
            CREATE INDEX IF NOT EXISTS idx_column_values_key
                ON column_values (column_key);
        """)


def truncate_all(conn):
    """Remove every row from every table. Development and tests only."""
    with cursor(conn, "truncate") as cur:
        cur.execute(f"TRUNCATE {', '.join(TABLES)};")
