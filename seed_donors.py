#!/usr/bin/env python3
"""
Seed sample donors and a few custom columns.

Connects to FIELDSTORE_DATABASE_URL, or starts the embedded server in
FIELDSTORE_DATA_DIR when no URL is configured.

Usage:
    python seed_donors.py            # add sample data
    python seed_donors.py --reset    # clear every table first
"""

import argparse

from fieldstore.config import get_settings
from fieldstore.db import connect
from fieldstore.donors import DonorService
from fieldstore.entities import EntityStore
from fieldstore.errors import DuplicateKey
from fieldstore.lifecycle import ColumnLifecycleManager
from fieldstore.logging import configure_logging, get_logger
from fieldstore.models import ColumnDefinition, Donor
from fieldstore.registry import ColumnRegistry
from fieldstore.schema import bootstrap_schema, truncate_all
from fieldstore.server import FieldStoreServer
from fieldstore.values import ValueStore

logger = get_logger(__name__)


SAMPLE_DONORS = [
    {"donor_name": "John Smith", "email": "john.smith@example.com",
     "phone": "555-0101", "status": "active",
     "total_donated": 5000, "total_donations": 3},
    {"donor_name": "Sarah Johnson", "email": "sarah.j@example.com",
     "phone": "555-0102", "status": "active",
     "total_donated": 10000, "total_donations": 5},
    {"donor_name": "Michael Brown", "email": "mbrown@example.com",
     "phone": "555-0103", "status": "potential",
     "total_donated": 0, "total_donations": 0},
    {"donor_name": "Emily Davis", "email": "emily.davis@example.com",
     "phone": "555-0104", "status": "active",
     "total_donated": 7500, "total_donations": 4},
    {"donor_name": "David Wilson", "email": "dwilson@example.com",
     "phone": "555-0105", "status": "potential",
     "total_donated": 0, "total_donations": 0},
]

SAMPLE_COLUMNS = [
    ColumnDefinition(column_key="budget", title="Budget", type="number"),
    ColumnDefinition(column_key="region", title="Region", type="dropdown",
                     options={"choices": ["North", "South", "East", "West"]}),
    ColumnDefinition(column_key="notes", title="Notes", type="text", width=300),
]


def seed(conn, reset=False):
    if reset:
        truncate_all(conn)
        logger.info("seed_reset")

    values = ValueStore(conn)
    registry = ColumnRegistry(conn, values)
    lifecycle = ColumnLifecycleManager(registry, values)
    donors = DonorService(conn, registry, values)

    for defn in SAMPLE_COLUMNS:
        try:
            lifecycle.create(defn)
        except DuplicateKey:
            logger.info("seed_column_exists", column_key=defn.column_key)

    created = []
    for data in SAMPLE_DONORS:
        try:
            created.append(donors.create(data))
        except DuplicateKey:
            logger.info("seed_donor_exists", email=data["email"])

    for record, region in zip(created, ["North", "South", "East", "West", "North"]):
        donors.set_custom_field(record["id"], "region", region)
        if record["total_donated"]:
            donors.set_custom_field(record["id"], "budget", record["total_donated"] * 2)

    return created


def main():
    parser = argparse.ArgumentParser(description="Seed sample donors")
    parser.add_argument("--reset", action="store_true",
                        help="remove all existing data first")
    args = parser.parse_args()

    settings = get_settings()
    configure_logging(settings.log_level, settings.log_format)

    server = None
    if settings.database_url:
        conn = connect(settings.database_url)
        bootstrap_schema(conn)
    else:
        server = FieldStoreServer(settings.data_dir).start()
        conn = server.connect()

    try:
        created = seed(conn, reset=args.reset)
        print(f"\nInserted {len(created)} donors "
              f"({len(SAMPLE_DONORS) - len(created)} already present)")
        for i, record in enumerate(created, 1):
            print(f"{i}. {record['donor_name']} - {record['email']} ({record['status']})")
        print(f"Total donors: {EntityStore(conn).count(Donor)}")
    finally:
        conn.close()
        if server is not None:
            server.stop()


if __name__ == "__main__":
    main()
