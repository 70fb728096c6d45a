"""
Shared fixtures for adversarial tests.

Provides common test infrastructure for race condition and brute force
tests. Needs PostgreSQL: row locks are what is under test, so there is
no in-memory fallback and the tests skip without a database.
"""

from collections.abc import Generator
from unittest.mock import Mock

import psycopg
import pytest
from psycopg_pool import ConnectionPool

from csrms.adapters.repository.postgres import PostgresStore, run_migrations
from csrms.config.settings import get_settings
from csrms.domain.coordinator import TransactionalCoordinator
from csrms.domain.lifecycle import RequestLifecycleService
from csrms.domain.models import UserRecord
from csrms.domain.notifications import NotificationDispatcher
from csrms.domain.otp import OtpService
from csrms.domain.passwords import hash_password
from csrms.domain.ports import Category, NotificationPreference, Role

# Module-level marker for all adversarial tests
pytestmark = pytest.mark.adversarial

TABLES = "notifications, audit_logs, service_requests, municipal_staff, citizens, users"


@pytest.fixture(scope="module")
def pool() -> Generator[ConnectionPool, None, None]:
    """Create connection pool for adversarial tests."""
    settings = get_settings()
    try:
        psycopg.connect(settings.database_url, connect_timeout=2).close()
    except psycopg.OperationalError as e:
        pytest.skip(f"PostgreSQL not reachable: {e}")

    pool = ConnectionPool(
        conninfo=settings.database_url,
        min_size=1,
        max_size=20,
        open=True,
    )
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


@pytest.fixture
def lifecycle(store: PostgresStore, email_sender: Mock) -> RequestLifecycleService:
    return RequestLifecycleService(
        coordinator=TransactionalCoordinator(store),
        dispatcher=NotificationDispatcher(email_sender),
        store=store,
    )


@pytest.fixture
def otp_service(store: PostgresStore, email_sender: Mock, token_issuer: Mock) -> OtpService:
    return OtpService(
        coordinator=TransactionalCoordinator(store),
        dispatcher=NotificationDispatcher(email_sender),
        token_issuer=token_issuer,
    )


@pytest.fixture
def citizen(store: PostgresStore) -> UserRecord:
    """Helper citizen with an active profile."""
    with store.transaction() as tx:
        user = tx.insert_user(
            "USR-attacked",
            "victim@example.com",
            hash_password("correct-horse-battery"),
            "Victim User",
            "0912345678",
            "1 Test Street, Test City",
            Role.CITIZEN,
        )
        tx.insert_citizen("CIT-attacked", user.id, NotificationPreference.EMAIL)
    return user


@pytest.fixture
def request_code(lifecycle: RequestLifecycleService, citizen: UserRecord) -> str:
    """A Pending request owned by ``citizen``."""
    return lifecycle.create(
        citizen_user_id=citizen.id,
        title="Contested request",
        description=None,
        category=Category.ROAD_MAINTENANCE,
        location="Ring Road junction",
    ).request_code
