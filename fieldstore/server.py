"""
Embedded PostgreSQL server for development and tests.
Uses pgserver for pip-installable PostgreSQL binaries and bootstraps the
field store schema on start.
"""

import os

import pgserver

from fieldstore.db import connect
from fieldstore.logging import get_logger
from fieldstore.schema import bootstrap_schema

logger = get_logger(__name__)

DEFAULT_DATA_DIR = os.path.join(
    os.path.dirname(__file__), "..", ".pgdata", "fieldstore"
)


class FieldStoreServer:
    """Manages an embedded PostgreSQL instance holding the field store."""

    def __init__(self, data_dir=None):
        self.data_dir = os.path.abspath(data_dir or DEFAULT_DATA_DIR)
        self._pg = None

    def start(self):
        """Start the embedded server and bootstrap the schema if needed."""
        os.makedirs(self.data_dir, exist_ok=True)
        self._pg = pgserver.get_server(self.data_dir)
        conn = self.connect()
        try:
            bootstrap_schema(conn)
        finally:
            conn.close()
        logger.info("embedded_server_started", data_dir=self.data_dir)
        return self

    # ── Public API ───────────────────────────────────────────────────

    def dsn(self):
        """libpq connection URI for this server."""
        if self._pg is None:
            raise RuntimeError("FieldStoreServer is not started")
        return self._pg.get_uri()

    def connect(self):
        """Open a new autocommit connection."""
        return connect(self.dsn())

    def stop(self):
        """Stop the embedded PostgreSQL server."""
        if self._pg:
            self._pg.cleanup()
            self._pg = None
            logger.info("embedded_server_stopped", data_dir=self.data_dir)

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, *args):
        self.stop()
