"""
FastAPI application factory.

create_app() wires logging, the connection pool, migrations, the domain
error handler and the /v1 routers. ``app`` is the instance an ASGI server
loads (``csrms.api.main:app``).
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import psycopg
from fastapi import Depends, FastAPI
from psycopg_pool import ConnectionPool

from csrms.adapters.repository.postgres import run_migrations
from csrms.api.dependencies import get_pool
from csrms.api.errors import install_error_handlers
from csrms.api.v1 import router as v1_router
from csrms.config.settings import Settings, get_settings
from csrms.domain.exceptions import DependencyFailure

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# OpenAPI tags for documentation grouping
tags_metadata = [
    {"name": "auth", "description": "Registration, one-time codes, login and password reset"},
    {"name": "requests", "description": "Service request submission and lifecycle"},
    {"name": "users", "description": "Profile and account management"},
    {"name": "notifications", "description": "In-app notification inbox"},
]


def open_pool(settings: Settings) -> ConnectionPool:
    """Open the pool and bring the schema up to date."""
    logger.info(
        "Opening connection pool (min=%d, max=%d)", settings.pool_min_size, settings.pool_max_size
    )
    pool = ConnectionPool(
        conninfo=settings.database_url,
        min_size=settings.pool_min_size,
        max_size=settings.pool_max_size,
        open=True,
    )
    run_migrations(pool)
    return pool


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Own the connection pool for the life of the process.

    The pool lands in app.state, where get_pool() finds it.
    """
    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper(), format=LOG_FORMAT)

    app.state.pool = open_pool(settings)
    logger.info("csrms ready (email backend: %s)", settings.email_backend)

    yield

    app.state.pool.close()
    logger.info("Connection pool closed")


def health_check(pool: ConnectionPool = Depends(get_pool)) -> dict[str, str]:
    """
    Report whether the database answers.

    Raises:
        DependencyFailure: The database is unreachable (503)
    """
    try:
        with pool.connection() as conn:
            conn.execute("SELECT 1")
    except psycopg.Error as e:
        raise DependencyFailure("Database unavailable") from e

    return {"status": "healthy", "database": "ok"}


def create_app() -> FastAPI:
    app = FastAPI(
        title="csrms",
        description="Citizen Service Request Management System API",
        version="0.1.0",
        openapi_tags=tags_metadata,
        lifespan=lifespan,
    )
    install_error_handlers(app)
    app.include_router(v1_router, prefix="/v1")
    app.add_api_route("/health", health_check, methods=["GET"], summary="Database health check")
    return app


app = create_app()
