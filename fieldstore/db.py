"""
Connection helpers shared by every store.

Stores hold a plain psycopg2 connection in autocommit mode. Statements are
issued through ``cursor()`` so driver errors surface as field store errors,
and multi-statement units that must be all-or-nothing use ``transaction()``.
"""

from contextlib import contextmanager

import psycopg2
import psycopg2.errors
import psycopg2.extras

from fieldstore.errors import DependencyFailure, DuplicateKey


def connect(dsn):
    """Open an autocommit connection with UUID adaptation registered."""
    try:
        conn = psycopg2.connect(dsn)
    except psycopg2.Error as exc:
        raise DependencyFailure("connect", exc) from exc
    conn.autocommit = True
    psycopg2.extras.register_uuid(conn_or_curs=conn)
    return conn


@contextmanager
def cursor(conn, operation):
    """Yield a cursor; translate driver errors raised while it is in use."""
    try:
        with conn.cursor() as cur:
            yield cur
    except psycopg2.errors.UniqueViolation as exc:
        detail = (exc.diag.message_detail or str(exc)).strip()
        raise DuplicateKey(detail, {"operation": operation}) from exc
    except psycopg2.Error as exc:
        raise DependencyFailure(operation, exc) from exc


@contextmanager
def transaction(conn):
    """Run the enclosed statements in a single transaction.

    Re-entrant: a nested block joins the outer transaction.
    """
    if not conn.autocommit:
        yield conn
        return

    conn.autocommit = False
    try:
        yield conn
        conn.commit()
    except psycopg2.Error as exc:
        conn.rollback()
        raise DependencyFailure("commit", exc) from exc
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.autocommit = True
