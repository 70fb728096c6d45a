"""
Domain records - immutable snapshots of persisted rows.

Adapters build these from database rows; services never mutate them,
they ask the open transaction to change state and receive fresh records.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from uuid import uuid4

from .ports import (
    AuditAction,
    Category,
    NotificationPreference,
    OtpFlow,
    Priority,
    RequestStatus,
    Role,
)


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_code(prefix: str) -> str:
    """External identifier such as ``REQ-1a2b3c4d``."""
    return f"{prefix}-{str(uuid4())[:8]}"


@dataclass(frozen=True)
class UserRecord:
    """Credential Store row."""

    id: int
    user_code: str
    email: str
    password_hash: str
    role: Role
    full_name: str
    phone_number: str | None = None
    address: str | None = None
    is_verified: bool = False
    is_active: bool = True
    otp_code: str | None = None
    otp_expires_at: datetime | None = None
    otp_flow: OtpFlow | None = None
    registration_date: datetime | None = None


@dataclass(frozen=True)
class CitizenRecord:
    """Citizen profile with its lifecycle counters."""

    id: int
    citizen_code: str
    user_id: int
    notification_preference: NotificationPreference = NotificationPreference.EMAIL
    total_requests_submitted: int = 0
    total_requests_resolved: int = 0


@dataclass(frozen=True)
class ServiceRequestRecord:
    """
    Service request row.

    ``owner_user_id`` and ``owner_email`` are populated when the request is
    loaded for a status change, so the notification can be addressed
    without a second query.
    """

    id: int
    request_code: str
    citizen_id: int
    title: str
    category: Category
    status: RequestStatus
    location: str
    description: str | None = None
    priority: Priority = Priority.MEDIUM
    image_path: str | None = None
    submission_date: datetime | None = None
    resolution_date: datetime | None = None
    owner_user_id: int | None = None
    owner_email: str | None = None
    owner_preference: NotificationPreference | None = None


@dataclass(frozen=True)
class AuditEntry:
    """Immutable audit record, written inside the unit it documents."""

    log_code: str
    actor_id: int | None
    action: AuditAction
    detail: str
    origin: str | None = None
    created_at: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class NotificationRecord:
    """In-app notification addressed to one user."""

    id: int
    notification_code: str
    recipient_id: int
    subject: str
    message: str
    request_id: int | None = None
    is_read: bool = False
    sent_date: datetime | None = None
    read_date: datetime | None = None


@dataclass(frozen=True)
class Principal:
    """Identity carried by a session token."""

    user_id: int
    role: Role
    email: str


@dataclass(frozen=True)
class StatusCounts:
    """Aggregate status counts for one citizen."""

    total: int = 0
    pending: int = 0
    in_progress: int = 0
    resolved: int = 0
    rejected: int = 0


@dataclass(frozen=True)
class RequestQuery:
    """Filter and ordering for request listings."""

    status: RequestStatus | None = None
    category: Category | None = None
    priority: Priority | None = None
    sort: str = "submission_date"
    order: str = "desc"
    owner_user_id: int | None = None
    limit: int = 100


@dataclass(frozen=True)
class Profile:
    """User profile joined with citizen or staff details."""

    user: UserRecord
    citizen: CitizenRecord | None = None
    staff_id: str | None = None
    department: str | None = None
