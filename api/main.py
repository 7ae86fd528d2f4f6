"""FastAPI application factory."""

import threading
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import psycopg2
import psycopg2.extras
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from psycopg2.pool import ThreadedConnectionPool

from api import routers
from api.responses import failure, from_error
from fieldstore.config import Settings, get_settings
from fieldstore.db import connect
from fieldstore.errors import DependencyFailure, FieldStoreError
from fieldstore.logging import configure_logging, get_logger
from fieldstore.schema import bootstrap_schema
from fieldstore.server import FieldStoreServer

logger = get_logger(__name__)


def _open_pool(dsn: str, settings: Settings) -> ThreadedConnectionPool:
    try:
        return ThreadedConnectionPool(
            settings.pool_min_size, settings.pool_max_size, dsn,
        )
    except psycopg2.Error as exc:
        raise DependencyFailure("open connection pool", exc) from exc


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan handler.

    Resolves the database (explicit DSN, configured URL, or an embedded
    server), makes sure the schema exists and opens the connection pool.
    FastAPI requires async lifespan, but our connections are sync.
    """
    settings: Settings = app.state.settings
    dsn = app.state.dsn or settings.database_url
    server = None

    if dsn is None:
        server = FieldStoreServer(settings.data_dir).start()
        dsn = server.dsn()
    else:
        conn = connect(dsn)
        try:
            bootstrap_schema(conn)
        finally:
            conn.close()

    psycopg2.extras.register_uuid()
    app.state.pool = _open_pool(dsn, settings)
    app.state.pool_slots = threading.BoundedSemaphore(settings.pool_max_size)
    logger.info(
        "api_started", embedded=server is not None,
        pool_max_size=settings.pool_max_size,
    )

    yield

    # Cleanup
    app.state.pool.closeall()
    app.state.pool = None
    app.state.pool_slots = None
    if server is not None:
        server.stop()
    logger.info("api_stopped")


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(FieldStoreError)
    async def field_store_error(request: Request, exc: FieldStoreError):
        if exc.status_code >= 500:
            logger.error(
                "request_failed", path=request.url.path, error=exc.error,
                details=exc.details,
            )
        return from_error(exc)

    @app.exception_handler(RequestValidationError)
    async def request_validation_error(request: Request, exc: RequestValidationError):
        details = {
            ".".join(str(p) for p in err["loc"] if p != "body") or "body": err["msg"]
            for err in exc.errors()
        }
        return failure("Invalid request", "ValidationError", 400, details)

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception):
        logger.exception("unhandled_error", path=request.url.path)
        return failure("Internal server error", type(exc).__name__, 500)


def create_app(
    settings: Settings | None = None,
    dsn: str | None = None,
    title: str = "Field Store API",
    version: str = "1.0.0",
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Application settings (default: from environment)
        dsn: PostgreSQL DSN; overrides settings.database_url
        title: API title
        version: API version

    Returns:
        Configured FastAPI application
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level, settings.log_format)

    app = FastAPI(
        title=title,
        version=version,
        description="Donor records with user-defined custom columns",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.dsn = dsn
    app.state.pool = None
    app.state.pool_slots = None

    _register_error_handlers(app)

    # Include API routers
    app.include_router(routers.columns.router, prefix="/api", tags=["columns"])
    app.include_router(routers.donors.router, prefix="/api", tags=["donors"])

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "healthy"}

    return app
