"""
Shared fixtures for integration tests.

Requires PostgreSQL reachable at DATABASE_URL;
every test here is skipped when it is not. The ``store`` fixture is
overridden with PostgresStore, so the domain service fixtures from the
top-level conftest run against the real database.
"""

from collections.abc import Generator

import psycopg
import pytest
from psycopg_pool import ConnectionPool

from csrms.adapters.repository.postgres import PostgresStore, run_migrations
from csrms.config.settings import get_settings
from csrms.domain.models import UserRecord
from csrms.domain.passwords import hash_password
from csrms.domain.ports import NotificationPreference, Role

TABLES = "notifications, audit_logs, service_requests, municipal_staff, citizens, users"

PASSWORD = "correct-horse-battery"


@pytest.fixture(scope="session")
def database_url() -> str:
    url = get_settings().database_url
    try:
        psycopg.connect(url, connect_timeout=2).close()
    except psycopg.OperationalError as e:
        pytest.skip(f"PostgreSQL not reachable: {e}")
    return url


@pytest.fixture(scope="module")
def pool(database_url: str) -> Generator[ConnectionPool, None, None]:
    """Create connection pool for integration tests."""
    pool = ConnectionPool(conninfo=database_url, min_size=1, max_size=10, open=True)
    run_migrations(pool)
    yield pool
    pool.close()


@pytest.fixture(autouse=True)
def clean_database(pool: ConnectionPool) -> Generator[None, None, None]:
    """Empty every table before each test."""
    with pool.connection() as conn:
        conn.execute(f"TRUNCATE {TABLES} RESTART IDENTITY CASCADE")
    yield


@pytest.fixture
def store(pool: ConnectionPool) -> PostgresStore:
    return PostgresStore(pool)


def seed_user(
    store: PostgresStore,
    pool: ConnectionPool,
    email: str,
    role: Role = Role.CITIZEN,
    staff_id: str | None = None,
    with_profile: bool = True,
) -> UserRecord:
    """Insert an active user (plus citizen or staff row) directly."""
    with store.transaction() as tx:
        user = tx.insert_user(
            f"USR-{email.split('@')[0][:12]}",
            email,
            hash_password(PASSWORD),
            "Test User",
            "0912345678",
            "1 Test Street, Test City",
            role,
        )
        if role is Role.CITIZEN and with_profile:
            tx.insert_citizen(f"CIT-{user.id}", user.id, NotificationPreference.EMAIL)
    if staff_id is not None:
        with pool.connection() as conn:
            conn.execute(
                "INSERT INTO municipal_staff (staff_id, user_id, department) VALUES (%s, %s, %s)",
                (staff_id, user.id, "Public Works"),
            )
    return user


@pytest.fixture
def citizen(store: PostgresStore, pool: ConnectionPool) -> UserRecord:
    return seed_user(store, pool, "citizen@example.com")


@pytest.fixture
def admin(store: PostgresStore, pool: ConnectionPool) -> UserRecord:
    return seed_user(store, pool, "admin@example.com", role=Role.ADMINISTRATOR, staff_id="UGR/0001")


@pytest.fixture
def seed(store: PostgresStore, pool: ConnectionPool):
    """Return a function inserting extra users."""
    return lambda email, **kwargs: seed_user(store, pool, email, **kwargs)


@pytest.fixture
def fetch_one(pool: ConnectionPool):
    """Return a function running one query and fetching its first row."""

    def run(query: str, params: tuple = ()) -> tuple | None:
        with pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(query, params)
            return cursor.fetchone()

    return run
