"""
Tests for DonorService and the entity document store underneath it.
"""

import uuid

import pytest

from fieldstore.errors import ColumnNotFound, DuplicateKey, EntityNotFound, ValidationError
from fieldstore.models import ColumnDefinition, Donor


class TestCreate:

    def test_create_defaults(self, donors):
        rec = donors.create({"donor_name": "  Ada  ", "email": "Ada@Example.ORG"})
        assert uuid.UUID(rec["id"])
        assert rec["donor_name"] == "Ada"
        assert rec["email"] == "ada@example.org"
        assert rec["status"] == "potential"
        assert rec["total_donated"] == 0.0
        assert rec["total_donations"] == 0
        assert rec["phone"] is None
        assert rec["customFields"] == {}

    def test_duplicate_email_case_insensitive(self, donors):
        donors.create({"donor_name": "A", "email": "a@example.org"})
        with pytest.raises(DuplicateKey, match="email already exists"):
            donors.create({"donor_name": "B", "email": "A@EXAMPLE.org"})

    @pytest.mark.parametrize("data,field", [
        ({"email": "a@example.org"}, "donor_name"),
        ({"donor_name": "A", "email": "nope"}, "email"),
        ({"donor_name": "A", "email": "a@x.org", "status": "vip"}, "status"),
        ({"donor_name": "A", "email": "a@x.org", "total_donated": -1}, "total_donated"),
        ({"donor_name": "A", "email": "a@x.org", "total_donations": 1.5}, "total_donations"),
        ({"donor_name": "x" * 201, "email": "a@x.org"}, "donor_name"),
        ({"donor_name": "A", "email": "a@x.org", "shoe_size": 9}, "shoe_size"),
    ])
    def test_validation(self, donors, data, field):
        with pytest.raises(ValidationError) as exc:
            donors.create(data)
        assert field in exc.value.details


class TestReadUpdateDelete:

    def test_get_roundtrip(self, donors, make_donor):
        rec = make_donor(donor_name="Bea", total_donated=12.5)
        got = donors.get(rec["id"])
        assert got["donor_name"] == "Bea"
        assert got["total_donated"] == 12.5

    def test_update_partial(self, donors, make_donor):
        rec = make_donor(status="potential", phone="1")
        updated = donors.update(rec["id"], {"status": "active"})
        assert updated["status"] == "active"
        assert updated["phone"] == "1"
        assert updated["updatedAt"] > rec["updatedAt"]

    def test_update_same_email_allowed(self, donors, make_donor):
        rec = make_donor(email="same@example.org")
        assert donors.update(rec["id"], {"email": "SAME@example.org"})["email"] == "same@example.org"

    def test_update_to_taken_email(self, donors, make_donor):
        make_donor(email="taken@example.org")
        rec = make_donor()
        with pytest.raises(DuplicateKey):
            donors.update(rec["id"], {"email": "taken@example.org"})

    def test_update_missing(self, donors):
        with pytest.raises(EntityNotFound):
            donors.update(str(uuid.uuid4()), {"status": "active"})

    def test_delete_cascades_values(self, donors, registry, values, make_donor):
        registry.create(ColumnDefinition(column_key="budget", title="Budget"))
        rec = make_donor()
        other = make_donor()
        donors.set_custom_field(rec["id"], "budget", 1)
        donors.set_custom_field(other["id"], "budget", 2)
        assert donors.delete(rec["id"]) == {"id": rec["id"], "valuesRemoved": 1}
        with pytest.raises(EntityNotFound):
            donors.get(rec["id"])
        assert values.count_for_column("budget") == 1

    def test_delete_missing(self, donors, conn):
        with pytest.raises(EntityNotFound):
            donors.delete(str(uuid.uuid4()))
        with pytest.raises(EntityNotFound):
            donors.delete("nope")
        assert conn.autocommit is True


class TestList:

    def test_newest_first_by_default(self, donors, make_donor):
        ids = [make_donor()["id"] for _ in range(3)]
        assert [d["id"] for d in donors.list()] == ids[::-1]

    def test_status_filter(self, donors, make_donor):
        make_donor(status="active")
        make_donor(status="potential")
        page = donors.list(status="active")
        assert page.total == 1
        assert page.items[0]["status"] == "active"

    def test_search_and_sort(self, donors, make_donor):
        make_donor(donor_name="Zed Smith")
        make_donor(donor_name="Amy Smith")
        make_donor(donor_name="Bob Jones")
        page = donors.list(search="smith", sort_by="donor_name", order="asc")
        assert [d["donor_name"] for d in page] == ["Amy Smith", "Zed Smith"]


class TestCustomFields:

    def test_set_and_overwrite(self, donors, registry, make_donor):
        registry.create(ColumnDefinition(column_key="budget", title="Budget", type="number"))
        rec = make_donor()
        donors.set_custom_field(rec["id"], "budget", 100)
        stored = donors.set_custom_field(rec["id"], "budget", 250)
        assert stored.value == 250
        assert donors.get(rec["id"])["customFields"] == {"budget": 250}

    def test_unknown_column(self, donors, make_donor):
        rec = make_donor()
        with pytest.raises(ColumnNotFound):
            donors.set_custom_field(rec["id"], "ghost", 1)

    def test_inactive_column(self, donors, registry, make_donor):
        registry.create(ColumnDefinition(column_key="budget", title="Budget"))
        registry.set_active("budget", False)
        rec = make_donor()
        with pytest.raises(ColumnNotFound, match="not found or inactive"):
            donors.set_custom_field(rec["id"], "budget", 1)

    def test_unknown_donor(self, donors, registry):
        registry.create(ColumnDefinition(column_key="budget", title="Budget"))
        with pytest.raises(EntityNotFound):
            donors.set_custom_field(str(uuid.uuid4()), "budget", 1)


class TestEntityStore:

    def test_field_kinds(self):
        kinds = Donor.field_kinds()
        assert kinds["total_donated"] == "number"
        assert kinds["total_donations"] == "number"
        assert kinds["donor_name"] == "text"
        assert kinds["phone"] == "text"

    def test_read_many_keeps_order_and_skips_missing(self, entities, make_donor):
        a = make_donor()["id"]
        b = make_donor()["id"]
        got = entities.read_many(Donor, [b, str(uuid.uuid4()), "bad", a])
        assert [d._store_entity_id for d in got] == [b, a]

    def test_existing_ids(self, entities, make_donor):
        a = make_donor()["id"]
        assert entities.existing_ids(Donor, [a, str(uuid.uuid4()), "x"]) == {a}

    def test_count_and_ids(self, entities, make_donor):
        ids = [make_donor()["id"] for _ in range(2)]
        assert entities.count(Donor) == 2
        assert entities.ids(Donor) == ids

    def test_update_requires_written_object(self, entities):
        with pytest.raises(ValueError):
            entities.update(Donor(donor_name="x"))
