"""FastAPI dependency injection.

Each request borrows one psycopg2 connection from the application's pool
and gets a fresh set of services bound to it. Nothing is shared between
requests except the pool itself.
"""

from collections.abc import Generator
from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Request
from psycopg2.pool import PoolError

from fieldstore.donors import DonorService
from fieldstore.entities import EntityStore
from fieldstore.errors import DependencyFailure
from fieldstore.lifecycle import ColumnLifecycleManager
from fieldstore.models import Donor
from fieldstore.query import EntityQueryService
from fieldstore.registry import ColumnRegistry
from fieldstore.values import ValueStore


def get_connection(request: Request) -> Generator:
    """Borrow an autocommit connection for the duration of the request.

    FastAPI runs sync endpoints on more threads than the pool holds
    connections, and ``getconn`` fails instead of waiting when the pool is
    empty. Requests therefore queue on one slot per pooled connection for
    up to ``pool_timeout`` seconds before failing with DependencyFailure.
    """
    state = request.app.state
    if not state.pool_slots.acquire(timeout=state.settings.pool_timeout):
        raise DependencyFailure(
            "acquire connection",
            f"no free connection after {state.settings.pool_timeout}s",
        )
    try:
        try:
            conn = state.pool.getconn()
        except PoolError as exc:
            raise DependencyFailure("acquire connection", exc) from exc
        try:
            conn.autocommit = True
            yield conn
        finally:
            state.pool.putconn(conn)
    finally:
        state.pool_slots.release()


@dataclass
class Services:
    registry: ColumnRegistry
    values: ValueStore
    entities: EntityStore
    query: EntityQueryService
    lifecycle: ColumnLifecycleManager
    donors: DonorService


ConnectionDep = Annotated[object, Depends(get_connection)]


def get_services(request: Request, conn: ConnectionDep) -> Services:
    settings = request.app.state.settings
    values = ValueStore(conn)
    registry = ColumnRegistry(conn, values)
    entities = EntityStore(conn)
    query = EntityQueryService(
        conn, Donor, registry, values, entities=entities,
        default_page_size=settings.default_page_size,
        max_page_size=settings.max_page_size,
    )
    return Services(
        registry=registry,
        values=values,
        entities=entities,
        query=query,
        lifecycle=ColumnLifecycleManager(
            registry, values, entities=entities, entity_cls=Donor,
        ),
        donors=DonorService(conn, registry, values, entities=entities, query=query),
    )


# Type aliases for dependency injection
ServicesDep = Annotated[Services, Depends(get_services)]
