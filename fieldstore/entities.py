"""
EntityStore: base entity documents in the ``entities`` table.

One row per entity: the Storable's declared fields are kept as a single
JSONB document next to server-assigned timestamps. Writes overwrite in
place; dynamic column values are not touched here (see ValueStore).
"""

import json
import uuid

from fieldstore.base import _JSONEncoder, _json_decoder_hook
from fieldstore.db import cursor
from fieldstore.errors import EntityNotFound

_SELECT = "SELECT entity_id, data, created_at, updated_at FROM entities"


def parse_entity_id(value):
    """Canonical string form of an entity id, or None if malformed."""
    if isinstance(value, uuid.UUID):
        return str(value)
    try:
        return str(uuid.UUID(str(value)))
    except (TypeError, ValueError, AttributeError):
        return None


class EntityStore:
    """
    Persists Storable documents.

    Usage:
        store = EntityStore(conn)
        eid = store.write(Donor(donor_name="Ada", email="ada@example.org"))
        donor = store.read(Donor, eid)
    """

    def __init__(self, conn):
        self.conn = conn

    # ── Write operations ──────────────────────────────────────────────

    def write(self, obj):
        """Insert a new entity. Returns the assigned entity_id."""
        with cursor(self.conn, f"create {obj.type_name()}") as cur:
            cur.execute(
                """
                INSERT INTO entities (type_name, data)
                VALUES (%s, %s::jsonb)
                RETURNING entity_id, created_at, updated_at
                """,
                (obj.type_name(), obj.to_json()),
            )
            entity_id, created_at, updated_at = cur.fetchone()
        obj._store_entity_id = str(entity_id)
        obj._store_created_at = created_at
        obj._store_updated_at = updated_at
        return obj._store_entity_id

    def update(self, obj):
        """Overwrite the stored document of an existing entity.

        Raises EntityNotFound if the entity was never written or is gone.
        """
        if not obj._store_entity_id:
            raise ValueError("Object has no entity_id, write() it first")
        with cursor(self.conn, f"update {obj.type_name()}") as cur:
            cur.execute(
                """
                UPDATE entities
                SET data = %s::jsonb, updated_at = clock_timestamp()
                WHERE entity_id = %s AND type_name = %s
                RETURNING updated_at
                """,
                (obj.to_json(), obj._store_entity_id, obj.type_name()),
            )
            row = cur.fetchone()
        if row is None:
            raise EntityNotFound(obj._store_entity_id, obj.type_name())
        obj._store_updated_at = row[0]
        return obj

    def delete(self, cls, entity_id):
        """Remove an entity document. Returns True if a row was deleted."""
        eid = parse_entity_id(entity_id)
        if eid is None:
            return False
        with cursor(self.conn, f"delete {cls.type_name()}") as cur:
            cur.execute(
                "DELETE FROM entities WHERE entity_id = %s AND type_name = %s",
                (eid, cls.type_name()),
            )
            return cur.rowcount > 0

    # ── Read operations ───────────────────────────────────────────────

    def read(self, cls, entity_id):
        """Return the entity, or None if absent or the id is malformed."""
        eid = parse_entity_id(entity_id)
        if eid is None:
            return None
        with cursor(self.conn, f"get {cls.type_name()}") as cur:
            cur.execute(
                _SELECT + " WHERE entity_id = %s AND type_name = %s",
                (eid, cls.type_name()),
            )
            row = cur.fetchone()
        return self.row_to_object(cls, row) if row else None

    def read_many(self, cls, entity_ids):
        """Return entities in the order of ``entity_ids``; missing ids are skipped."""
        ids = [eid for eid in (parse_entity_id(e) for e in entity_ids) if eid]
        if not ids:
            return []
        with cursor(self.conn, f"get {cls.type_name()} batch") as cur:
            cur.execute(
                _SELECT + " WHERE entity_id = ANY(%s::uuid[]) AND type_name = %s",
                (ids, cls.type_name()),
            )
            found = {str(r[0]): self.row_to_object(cls, r) for r in cur.fetchall()}
        return [found[eid] for eid in ids if eid in found]

    def find_one(self, cls, filters):
        """First entity whose document contains ``filters`` (JSONB @>)."""
        with cursor(self.conn, f"find {cls.type_name()}") as cur:
            cur.execute(
                _SELECT + " WHERE type_name = %s AND data @> %s::jsonb LIMIT 1",
                (cls.type_name(), json.dumps(filters, cls=_JSONEncoder)),
            )
            row = cur.fetchone()
        return self.row_to_object(cls, row) if row else None

    def existing_ids(self, cls, entity_ids):
        """Subset of ``entity_ids`` that name stored entities of ``cls``."""
        ids = [eid for eid in (parse_entity_id(e) for e in entity_ids) if eid]
        if not ids:
            return set()
        with cursor(self.conn, f"check {cls.type_name()} ids") as cur:
            cur.execute(
                """
                SELECT entity_id FROM entities
                WHERE entity_id = ANY(%s::uuid[]) AND type_name = %s
                """,
                (ids, cls.type_name()),
            )
            return {str(r[0]) for r in cur.fetchall()}

    def ids(self, cls):
        """Every entity id of ``cls`` in creation order."""
        with cursor(self.conn, f"list {cls.type_name()} ids") as cur:
            cur.execute(
                """
                SELECT entity_id FROM entities WHERE type_name = %s
                ORDER BY created_at, entity_id
                """,
                (cls.type_name(),),
            )
            return [str(r[0]) for r in cur.fetchall()]

    def count(self, cls):
        with cursor(self.conn, f"count {cls.type_name()}") as cur:
            cur.execute(
                "SELECT COUNT(*) FROM entities WHERE type_name = %s",
                (cls.type_name(),),
            )
            return cur.fetchone()[0]

    # ── Row conversion ────────────────────────────────────────────────

    @staticmethod
    def row_to_object(cls, row):
        """Convert a database row to a typed object with store metadata."""
        entity_id, data, created_at, updated_at = row
        # psycopg2 parses JSONB into plain dicts; re-run the decoder hook so
        # tagged values (datetime, Decimal, ...) come back typed
        if isinstance(data, str):
            data = json.loads(data, object_hook=_json_decoder_hook)
        else:
            data = json.loads(
                json.dumps(data, cls=_JSONEncoder),
                object_hook=_json_decoder_hook,
            )
        obj = cls.from_data(data)
        obj._store_entity_id = str(entity_id)
        obj._store_created_at = created_at
        obj._store_updated_at = updated_at
        return obj
