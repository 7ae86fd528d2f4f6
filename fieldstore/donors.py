"""
DonorService: donor records and their custom field values.

Base fields are validated here and stored as Donor documents; custom
fields are written through the ValueStore after the target column has been
checked to exist and be active. Reads always come back merged
(``customFields``) through the EntityQueryService.
"""

from fieldstore.db import transaction
from fieldstore.entities import EntityStore, parse_entity_id
from fieldstore.errors import DuplicateKey, EntityNotFound, ValidationError
from fieldstore.logging import get_logger
from fieldstore.models import Donor, validate_donor
from fieldstore.query import EntityQueryService

logger = get_logger(__name__)


class DonorService:
    """
    Donor CRUD on one connection.

    Usage:
        donors = DonorService(conn, registry, values)
        record = donors.create({"donor_name": "Ada", "email": "ada@example.org"})
        donors.set_custom_field(record["id"], "budget", 5000)
    """

    def __init__(self, conn, registry, values, entities=None, query=None):
        self.conn = conn
        self.registry = registry
        self.values = values
        self.entities = entities or EntityStore(conn)
        self.query = query or EntityQueryService(
            conn, Donor, registry, values, entities=self.entities,
        )

    def _check_email_free(self, email, exclude_id=None):
        existing = self.entities.find_one(Donor, {"email": email})
        if existing is not None and existing._store_entity_id != exclude_id:
            raise DuplicateKey(
                "Donor with this email already exists", {"email": email},
            )

    def _load(self, donor_id):
        donor = self.entities.read(Donor, donor_id)
        if donor is None:
            raise EntityNotFound(donor_id, "Donor")
        return donor

    # ── CRUD ──────────────────────────────────────────────────────────

    def create(self, data) -> dict:
        fields = validate_donor(data)
        self._check_email_free(fields["email"])
        donor = Donor(**fields)
        eid = self.entities.write(donor)
        logger.info("donor_created", donor_id=eid)
        return self.query.to_record(donor, {})

    def get(self, donor_id) -> dict:
        return self.query.get(donor_id)

    def update(self, donor_id, changes) -> dict:
        """Partial update of base fields. Email uniqueness is re-checked
        only when the email actually changes."""
        fields = validate_donor(changes, partial=True)
        donor = self._load(donor_id)
        if "email" in fields and fields["email"] != donor.email:
            self._check_email_free(fields["email"], exclude_id=donor._store_entity_id)
        for name, value in fields.items():
            setattr(donor, name, value)
        self.entities.update(donor)
        logger.info("donor_updated", donor_id=donor._store_entity_id,
                    fields=sorted(fields))
        return self.query.get(donor._store_entity_id)

    def delete(self, donor_id) -> dict:
        """Delete a donor and all of its custom values together."""
        eid = parse_entity_id(donor_id)
        with transaction(self.conn):
            if eid is None or not self.entities.delete(Donor, eid):
                raise EntityNotFound(donor_id, "Donor")
            removed = self.values.delete_for_entity(eid)
        logger.info("donor_deleted", donor_id=eid, values_removed=removed)
        return {"id": eid, "valuesRemoved": removed}

    def list(self, page=1, limit=None, search=None, status=None,
             sort_by="created_at", order="desc"):
        """Paginated donors, newest first unless told otherwise."""
        filters = []
        if status is not None:
            filters.append({"field": "status", "operator": "equals", "value": status})
        return self.query.query(
            filters=filters, sort_by=sort_by, order=order, page=page,
            limit=limit, search=search,
        )

    # ── Custom fields ─────────────────────────────────────────────────

    def set_custom_field(self, donor_id, column_key, value):
        """Upsert one custom value for one donor.

        Raises EntityNotFound for an unknown donor and ColumnNotFound if
        the column is absent or inactive.
        """
        if not isinstance(column_key, str) or not column_key.strip():
            raise ValidationError.for_field("column_key", "Column key is required")
        donor = self._load(donor_id)
        self.registry.get_active(column_key)
        stored = self.values.upsert(donor._store_entity_id, column_key, value)
        logger.info("custom_field_set", donor_id=donor._store_entity_id,
                    column_key=column_key)
        return stored
