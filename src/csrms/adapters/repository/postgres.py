"""
PostgreSQL repository adapter - Implements the Store and Transaction ports.

This module provides the PostgreSQL implementation of the domain's
persistence ports using psycopg3 with raw SQL.

Locking and Atomicity:
---------------------
1. **One connection per unit**: PostgresStore.transaction() checks a
   connection out of the pool, opens a transaction and hands a
   PostgresTransaction bound to it to the domain. Clean exit commits,
   an exception rolls back.

2. **SELECT ... FOR UPDATE**: Locked reads hold the row lock until the
   unit ends. Status changes lock the request row (``FOR UPDATE OF sr``);
   OTP issuance and consumption lock the user row. Concurrent units on
   the same row serialize; different rows proceed in parallel.

3. **Counters**: ``SET x = x + 1`` in SQL, never read-modify-write from
   application memory.

4. **Constraint mapping**: a unique violation on ``users.email`` becomes
   EmailAlreadyRegistered; other database errors propagate and the
   coordinator reports them as DependencyFailure.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from importlib import resources
from importlib.resources.abc import Traversable
from typing import Any

from psycopg import Cursor, errors, sql
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from csrms.domain.exceptions import EmailAlreadyRegistered
from csrms.domain.models import (
    AuditEntry,
    CitizenRecord,
    NotificationRecord,
    Profile,
    RequestQuery,
    ServiceRequestRecord,
    StatusCounts,
    UserRecord,
)
from csrms.domain.ports import (
    Category,
    NotificationPreference,
    OtpFlow,
    Priority,
    RequestStatus,
    Role,
)

logger = logging.getLogger(__name__)

_USER_COLUMNS = """
    u.id, u.user_id, u.email, u.password_hash, u.role, u.full_name,
    u.phone_number, u.address, u.is_verified, u.is_active,
    u.email_otp, u.email_otp_expires, u.email_otp_flow, u.registration_date
"""

_CITIZEN_COLUMNS = """
    c.id, c.citizen_id, c.user_id, c.notification_preference,
    c.total_requests_submitted, c.total_requests_resolved
"""

_REQUEST_COLUMNS = """
    sr.id, sr.request_id, sr.citizen_id, sr.title, sr.description, sr.category,
    sr.status, sr.priority, sr.location, sr.image_path,
    sr.submission_date, sr.resolution_date
"""

_NOTIFICATION_COLUMNS = """
    n.id, n.notification_id, n.recipient_id, n.request_id, n.subject, n.message,
    n.is_read, n.sent_date, n.read_date
"""


def _user_from_row(row: dict[str, Any]) -> UserRecord:
    return UserRecord(
        id=row["id"],
        user_code=row["user_id"],
        email=row["email"],
        password_hash=row["password_hash"],
        role=Role(row["role"]),
        full_name=row["full_name"],
        phone_number=row["phone_number"],
        address=row["address"],
        is_verified=row["is_verified"],
        is_active=row["is_active"],
        otp_code=row["email_otp"],
        otp_expires_at=row["email_otp_expires"],
        otp_flow=OtpFlow(row["email_otp_flow"]) if row["email_otp_flow"] else None,
        registration_date=row["registration_date"],
    )


def _citizen_from_row(row: dict[str, Any]) -> CitizenRecord:
    return CitizenRecord(
        id=row["id"],
        citizen_code=row["citizen_id"],
        user_id=row["user_id"],
        notification_preference=NotificationPreference(row["notification_preference"]),
        total_requests_submitted=row["total_requests_submitted"],
        total_requests_resolved=row["total_requests_resolved"],
    )


def _request_from_row(row: dict[str, Any]) -> ServiceRequestRecord:
    owner_preference = row.get("owner_preference")
    return ServiceRequestRecord(
        id=row["id"],
        request_code=row["request_id"],
        citizen_id=row["citizen_id"],
        title=row["title"],
        description=row["description"],
        category=Category(row["category"]),
        status=RequestStatus(row["status"]),
        priority=Priority(row["priority"]),
        location=row["location"],
        image_path=row["image_path"],
        submission_date=row["submission_date"],
        resolution_date=row["resolution_date"],
        owner_user_id=row.get("owner_user_id"),
        owner_email=row.get("owner_email"),
        owner_preference=NotificationPreference(owner_preference) if owner_preference else None,
    )


def _notification_from_row(row: dict[str, Any]) -> NotificationRecord:
    return NotificationRecord(
        id=row["id"],
        notification_code=row["notification_id"],
        recipient_id=row["recipient_id"],
        request_id=row["request_id"],
        subject=row["subject"],
        message=row["message"],
        is_read=row["is_read"],
        sent_date=row["sent_date"],
        read_date=row["read_date"],
    )


def _for_update(lock: bool, clause: str = "FOR UPDATE") -> str:
    return f" {clause}" if lock else ""


class PostgresTransaction:
    """
    Implements Transaction protocol on one open psycopg3 cursor.

    Uses structural subtyping - no explicit inheritance from Protocol.
    All SQL uses parameterized queries for security.
    """

    def __init__(self, cursor: Cursor) -> None:
        self._cursor = cursor

    def _fetchone(self, query: str, params: tuple = ()) -> dict[str, Any] | None:
        self._cursor.execute(query, params)
        return self._cursor.fetchone()

    # Credential Store

    def get_user_by_email(self, email: str, *, lock: bool = False) -> UserRecord | None:
        row = self._fetchone(
            f"SELECT {_USER_COLUMNS} FROM users u WHERE u.email = %s AND u.is_active = TRUE"
            + _for_update(lock),
            (email,),
        )
        return _user_from_row(row) if row else None

    def get_user_by_id(self, user_id: int, *, lock: bool = False) -> UserRecord | None:
        row = self._fetchone(
            f"SELECT {_USER_COLUMNS} FROM users u WHERE u.id = %s AND u.is_active = TRUE"
            + _for_update(lock),
            (user_id,),
        )
        return _user_from_row(row) if row else None

    def get_user_by_staff_id(self, staff_id: str) -> UserRecord | None:
        row = self._fetchone(
            f"""
            SELECT {_USER_COLUMNS}
            FROM users u
            JOIN municipal_staff m ON u.id = m.user_id
            WHERE m.staff_id = %s AND u.is_active = TRUE
            """,
            (staff_id,),
        )
        return _user_from_row(row) if row else None

    def insert_user(
        self,
        user_code: str,
        email: str,
        password_hash: str,
        full_name: str,
        phone_number: str,
        address: str,
        role: Role,
    ) -> UserRecord:
        try:
            row = self._fetchone(
                f"""
                INSERT INTO users AS u (user_id, email, password_hash, full_name, phone_number, address, role)
                VALUES (%s, %s, %s, %s, %s, %s, %s)
                RETURNING {_USER_COLUMNS}
                """,
                (user_code, email, password_hash, full_name, phone_number, address, role.value),
            )
        except errors.UniqueViolation as e:
            raise EmailAlreadyRegistered(email) from e
        return _user_from_row(row)

    def store_otp(self, user_id: int, code: str, expires_at: datetime, flow: OtpFlow) -> None:
        self._cursor.execute(
            """
            UPDATE users
            SET email_otp = %s, email_otp_expires = %s, email_otp_flow = %s
            WHERE id = %s
            """,
            (code, expires_at, flow.value, user_id),
        )

    def clear_otp(self, user_id: int) -> None:
        self._cursor.execute(
            """
            UPDATE users
            SET email_otp = NULL, email_otp_expires = NULL, email_otp_flow = NULL
            WHERE id = %s
            """,
            (user_id,),
        )

    def mark_verified(self, user_id: int) -> None:
        self._cursor.execute("UPDATE users SET is_verified = TRUE WHERE id = %s", (user_id,))

    def set_password_hash(self, user_id: int, password_hash: str) -> None:
        self._cursor.execute(
            "UPDATE users SET password_hash = %s WHERE id = %s", (password_hash, user_id)
        )

    def update_user_details(
        self,
        user_id: int,
        full_name: str | None,
        phone_number: str | None,
        address: str | None,
    ) -> UserRecord | None:
        row = self._fetchone(
            f"""
            UPDATE users AS u
            SET full_name = COALESCE(%s, full_name),
                phone_number = COALESCE(%s, phone_number),
                address = COALESCE(%s, address)
            WHERE u.id = %s AND u.is_active = TRUE
            RETURNING {_USER_COLUMNS}
            """,
            (full_name, phone_number, address, user_id),
        )
        return _user_from_row(row) if row else None

    def deactivate_user(self, user_id: int) -> bool:
        self._cursor.execute(
            "UPDATE users SET is_active = FALSE WHERE id = %s AND is_active = TRUE", (user_id,)
        )
        return self._cursor.rowcount == 1

    def has_staff_record(self, user_id: int) -> bool:
        return self._fetchone("SELECT 1 FROM municipal_staff WHERE user_id = %s", (user_id,)) is not None

    # Citizen profiles

    def insert_citizen(
        self, citizen_code: str, user_id: int, preference: NotificationPreference
    ) -> CitizenRecord:
        row = self._fetchone(
            f"""
            INSERT INTO citizens AS c (citizen_id, user_id, notification_preference)
            VALUES (%s, %s, %s)
            RETURNING {_CITIZEN_COLUMNS}
            """,
            (citizen_code, user_id, preference.value),
        )
        return _citizen_from_row(row)

    def get_citizen_by_user(self, user_id: int, *, lock: bool = False) -> CitizenRecord | None:
        row = self._fetchone(
            f"SELECT {_CITIZEN_COLUMNS} FROM citizens c WHERE c.user_id = %s" + _for_update(lock),
            (user_id,),
        )
        return _citizen_from_row(row) if row else None

    def set_notification_preference(self, citizen_id: int, preference: NotificationPreference) -> None:
        self._cursor.execute(
            "UPDATE citizens SET notification_preference = %s WHERE id = %s",
            (preference.value, citizen_id),
        )

    def increment_submitted(self, citizen_id: int) -> None:
        self._cursor.execute(
            "UPDATE citizens SET total_requests_submitted = total_requests_submitted + 1 WHERE id = %s",
            (citizen_id,),
        )

    def increment_resolved(self, citizen_id: int) -> None:
        self._cursor.execute(
            "UPDATE citizens SET total_requests_resolved = total_requests_resolved + 1 WHERE id = %s",
            (citizen_id,),
        )

    # Service requests

    def insert_request(
        self,
        request_code: str,
        citizen_id: int,
        title: str,
        description: str | None,
        category: Category,
        priority: Priority,
        location: str,
        image_path: str | None,
    ) -> ServiceRequestRecord:
        row = self._fetchone(
            f"""
            INSERT INTO service_requests AS sr
                (request_id, citizen_id, title, description, category, status, priority, location, image_path)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING {_REQUEST_COLUMNS}
            """,
            (
                request_code,
                citizen_id,
                title,
                description,
                category.value,
                RequestStatus.PENDING.value,
                priority.value,
                location,
                image_path,
            ),
        )
        return _request_from_row(row)

    def get_request(self, request_code: str, *, lock: bool = False) -> ServiceRequestRecord | None:
        row = self._fetchone(
            f"""
            SELECT {_REQUEST_COLUMNS},
                   u.id AS owner_user_id,
                   u.email AS owner_email,
                   c.notification_preference AS owner_preference
            FROM service_requests sr
            JOIN citizens c ON c.id = sr.citizen_id
            JOIN users u ON u.id = c.user_id
            WHERE sr.request_id = %s
            """
            + _for_update(lock, "FOR UPDATE OF sr"),
            (request_code,),
        )
        return _request_from_row(row) if row else None

    def set_request_status(
        self, request_id: int, status: RequestStatus, *, stamp_resolution: bool
    ) -> ServiceRequestRecord:
        row = self._fetchone(
            f"""
            UPDATE service_requests AS sr
            SET status = %s,
                resolution_date = CASE WHEN %s THEN COALESCE(sr.resolution_date, NOW())
                                       ELSE sr.resolution_date END
            WHERE sr.id = %s
            RETURNING {_REQUEST_COLUMNS}
            """,
            (status.value, stamp_resolution, request_id),
        )
        return _request_from_row(row)

    # Audit Trail and notifications

    def append_audit(self, entry: AuditEntry) -> None:
        self._cursor.execute(
            """
            INSERT INTO audit_logs (log_id, user_id, action, details, ip_address, created_at)
            VALUES (%s, %s, %s, %s, %s, %s)
            """,
            (
                entry.log_code,
                entry.actor_id,
                entry.action.value,
                entry.detail,
                entry.origin,
                entry.created_at,
            ),
        )

    def insert_notification(
        self,
        notification_code: str,
        recipient_id: int,
        request_id: int | None,
        subject: str,
        message: str,
    ) -> NotificationRecord:
        row = self._fetchone(
            f"""
            INSERT INTO notifications AS n (notification_id, recipient_id, request_id, subject, message)
            VALUES (%s, %s, %s, %s, %s)
            RETURNING {_NOTIFICATION_COLUMNS}
            """,
            (notification_code, recipient_id, request_id, subject, message),
        )
        return _notification_from_row(row)


class PostgresStore:
    """
    Implements Store protocol via psycopg3.

    Uses structural subtyping - no explicit inheritance from Protocol.
    Read-only queries run on their own pooled connection.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        """
        Initialize store with connection pool.

        Args:
            pool: psycopg3 ConnectionPool for database connections
        """
        self._pool = pool

    @contextmanager
    def transaction(self) -> Iterator[PostgresTransaction]:
        with self._pool.connection() as conn, conn.transaction():
            with conn.cursor(row_factory=dict_row) as cursor:
                yield PostgresTransaction(cursor)

    @contextmanager
    def _cursor(self) -> Iterator[Cursor]:
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            yield cursor

    def list_requests(self, query: RequestQuery) -> list[ServiceRequestRecord]:
        conditions = [sql.SQL("TRUE")]
        params: list[Any] = []

        if query.status is not None:
            conditions.append(sql.SQL("sr.status = %s"))
            params.append(query.status.value)
        if query.category is not None:
            conditions.append(sql.SQL("sr.category = %s"))
            params.append(query.category.value)
        if query.priority is not None:
            conditions.append(sql.SQL("sr.priority = %s"))
            params.append(query.priority.value)
        if query.owner_user_id is not None:
            conditions.append(
                sql.SQL("sr.citizen_id IN (SELECT c.id FROM citizens c WHERE c.user_id = %s)")
            )
            params.append(query.owner_user_id)
        params.append(query.limit)

        statement = sql.SQL(
            "SELECT {columns} FROM service_requests sr WHERE {where} ORDER BY {sort} {order} LIMIT %s"
        ).format(
            columns=sql.SQL(_REQUEST_COLUMNS),
            where=sql.SQL(" AND ").join(conditions),
            sort=sql.Identifier("sr", query.sort),
            order=sql.SQL("ASC" if query.order == "asc" else "DESC"),
        )

        with self._cursor() as cursor:
            cursor.execute(statement, params)
            return [_request_from_row(row) for row in cursor.fetchall()]

    def list_user_requests(self, user_id: int, limit: int | None = None) -> list[ServiceRequestRecord]:
        with self._cursor() as cursor:
            cursor.execute(
                f"""
                SELECT {_REQUEST_COLUMNS}
                FROM service_requests sr
                JOIN citizens c ON c.id = sr.citizen_id
                WHERE c.user_id = %s
                ORDER BY sr.submission_date DESC
                LIMIT %s
                """,
                (user_id, limit),
            )
            return [_request_from_row(row) for row in cursor.fetchall()]

    def status_counts(self, user_id: int) -> StatusCounts:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT COUNT(*) AS total,
                       COUNT(*) FILTER (WHERE sr.status = 'Pending') AS pending,
                       COUNT(*) FILTER (WHERE sr.status = 'In Progress') AS in_progress,
                       COUNT(*) FILTER (WHERE sr.status IN ('Resolved', 'Closed')) AS resolved,
                       COUNT(*) FILTER (WHERE sr.status = 'Rejected') AS rejected
                FROM service_requests sr
                JOIN citizens c ON c.id = sr.citizen_id
                WHERE c.user_id = %s
                """,
                (user_id,),
            )
            row = cursor.fetchone()
        return StatusCounts(**row)

    def get_profile(self, user_id: int) -> Profile | None:
        with self._cursor() as cursor:
            cursor.execute(
                f"SELECT {_USER_COLUMNS} FROM users u WHERE u.id = %s AND u.is_active = TRUE",
                (user_id,),
            )
            user_row = cursor.fetchone()
            if user_row is None:
                return None

            cursor.execute(
                f"SELECT {_CITIZEN_COLUMNS} FROM citizens c WHERE c.user_id = %s", (user_id,)
            )
            citizen_row = cursor.fetchone()

            cursor.execute(
                "SELECT staff_id, department FROM municipal_staff WHERE user_id = %s", (user_id,)
            )
            staff_row = cursor.fetchone()

        return Profile(
            user=_user_from_row(user_row),
            citizen=_citizen_from_row(citizen_row) if citizen_row else None,
            staff_id=staff_row["staff_id"] if staff_row else None,
            department=staff_row["department"] if staff_row else None,
        )

    def list_notifications(
        self, user_id: int, unread_only: bool, limit: int, offset: int
    ) -> tuple[list[NotificationRecord], int]:
        where = "WHERE n.recipient_id = %s" + (" AND n.is_read = FALSE" if unread_only else "")

        with self._cursor() as cursor:
            cursor.execute(
                f"""
                SELECT {_NOTIFICATION_COLUMNS}
                FROM notifications n
                {where}
                ORDER BY n.sent_date DESC
                LIMIT %s OFFSET %s
                """,
                (user_id, limit, offset),
            )
            rows = [_notification_from_row(row) for row in cursor.fetchall()]

            cursor.execute(f"SELECT COUNT(*) AS total FROM notifications n {where}", (user_id,))
            total = cursor.fetchone()["total"]

        return rows, total

    def mark_notification_read(self, user_id: int, notification_code: str) -> NotificationRecord | None:
        with self._cursor() as cursor:
            cursor.execute(
                f"""
                UPDATE notifications AS n
                SET is_read = TRUE, read_date = NOW()
                WHERE n.notification_id = %s AND n.recipient_id = %s
                RETURNING {_NOTIFICATION_COLUMNS}
                """,
                (notification_code, user_id),
            )
            row = cursor.fetchone()
        return _notification_from_row(row) if row else None

    def mark_all_notifications_read(self, user_id: int) -> int:
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE notifications
                SET is_read = TRUE, read_date = NOW()
                WHERE recipient_id = %s AND is_read = FALSE
                """,
                (user_id,),
            )
            return cursor.rowcount

    def delete_notification(self, user_id: int, notification_code: str) -> NotificationRecord | None:
        with self._cursor() as cursor:
            cursor.execute(
                f"""
                DELETE FROM notifications AS n
                WHERE n.notification_id = %s AND n.recipient_id = %s
                RETURNING {_NOTIFICATION_COLUMNS}
                """,
                (notification_code, user_id),
            )
            row = cursor.fetchone()
        return _notification_from_row(row) if row else None

    def unread_count(self, user_id: int) -> int:
        with self._cursor() as cursor:
            cursor.execute(
                "SELECT COUNT(*) AS unread FROM notifications WHERE recipient_id = %s AND is_read = FALSE",
                (user_id,),
            )
            return cursor.fetchone()["unread"]


def migration_files(package: str = "csrms") -> list[Traversable]:
    """
    SQL migrations shipped inside the package, sorted by filename.

    Raises:
        RuntimeError: The package carries no migrations
    """
    migrations_dir = resources.files(package) / "migrations"
    if not migrations_dir.is_dir():
        raise RuntimeError(f"Migrations directory missing from package {package}")

    sql_files = sorted(
        (entry for entry in migrations_dir.iterdir() if entry.name.endswith(".sql")),
        key=lambda entry: entry.name,
    )
    if not sql_files:
        raise RuntimeError(f"No migration files found in package {package}")
    return sql_files


def run_migrations(pool: ConnectionPool) -> None:
    """
    Execute all SQL migration files shipped with the package.

    Migrations are executed in sorted order (alphabetically by filename).
    Each migration should be idempotent (use IF NOT EXISTS, etc.).

    Args:
        pool: psycopg3 ConnectionPool instance
    """
    sql_files = migration_files()
    logger.info("Running %d migration(s)", len(sql_files))

    for sql_file in sql_files:
        logger.info("Executing migration: %s", sql_file.name)
        try:
            sql_content = sql_file.read_text(encoding="utf-8")

            with pool.connection() as conn:
                conn.execute(sql_content)
                # Committed when the pooled connection is returned

            logger.info("Migration complete: %s", sql_file.name)
        except Exception as e:
            logger.error("Migration failed: %s - %s", sql_file.name, e)
            raise RuntimeError(f"Database migration failed: {sql_file.name}") from e
