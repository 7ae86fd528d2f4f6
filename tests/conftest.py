"""
Shared fixtures: one embedded PostgreSQL for the whole session, a fresh
connection on empty tables for every test.
"""

import os
import sys
import tempfile

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from fieldstore.config import Settings
from fieldstore.donors import DonorService
from fieldstore.entities import EntityStore
from fieldstore.lifecycle import ColumnLifecycleManager
from fieldstore.models import Donor
from fieldstore.query import EntityQueryService
from fieldstore.registry import ColumnRegistry
from fieldstore.schema import truncate_all
from fieldstore.server import FieldStoreServer
from fieldstore.values import ValueStore


@pytest.fixture(scope="session")
def server():
    """Start an embedded PostgreSQL server for testing."""
    tmp_dir = tempfile.mkdtemp(prefix="test_fieldstore_")
    srv = FieldStoreServer(data_dir=tmp_dir)
    srv.start()
    yield srv
    srv.stop()


@pytest.fixture()
def conn(server):
    """Autocommit connection on truncated tables."""
    c = server.connect()
    truncate_all(c)
    yield c
    c.close()


@pytest.fixture()
def values(conn):
    return ValueStore(conn)


@pytest.fixture()
def registry(conn, values):
    return ColumnRegistry(conn, values)


@pytest.fixture()
def entities(conn):
    return EntityStore(conn)


@pytest.fixture()
def query(conn, registry, values, entities):
    return EntityQueryService(conn, Donor, registry, values, entities=entities)


@pytest.fixture()
def lifecycle(registry, values, entities):
    return ColumnLifecycleManager(registry, values, entities=entities, entity_cls=Donor)


@pytest.fixture()
def donors(conn, registry, values, entities, query):
    return DonorService(conn, registry, values, entities=entities, query=query)


@pytest.fixture()
def make_donor(donors):
    """Create a donor with sensible defaults; returns the merged record."""
    counter = {"n": 0}

    def _make(**fields):
        counter["n"] += 1
        data = {
            "donor_name": f"Donor {counter['n']}",
            "email": f"donor{counter['n']}@example.org",
        }
        data.update(fields)
        return donors.create(data)

    return _make


@pytest.fixture()
def client(server, conn):
    """TestClient bound to the session server; tables are already empty."""
    from fastapi.testclient import TestClient

    from api.main import create_app

    settings = Settings(log_level="WARNING", pool_min_size=1, pool_max_size=4)
    app = create_app(settings=settings, dsn=server.dsn())
    with TestClient(app) as c:
        yield c
