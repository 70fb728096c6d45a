"""
Port interfaces - Protocol definitions for infrastructure abstraction.

This module defines the enumerations that form the external contract and
the interfaces (ports) that the domain requires from infrastructure.
Adapters implement these protocols.
"""

from contextlib import AbstractContextManager
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from .models import (
        AuditEntry,
        CitizenRecord,
        NotificationRecord,
        Principal,
        Profile,
        RequestQuery,
        ServiceRequestRecord,
        StatusCounts,
        UserRecord,
    )


class RequestStatus(str, Enum):
    """
    Service request statuses.

    The string values are stored verbatim and returned to clients.
    Allowed transitions live in ``csrms.domain.lifecycle.TRANSITIONS``.
    """

    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    RESOLVED = "Resolved"
    CLOSED = "Closed"
    REJECTED = "Rejected"


class Role(str, Enum):
    CITIZEN = "Citizen"
    ADMINISTRATOR = "Administrator"


class Category(str, Enum):
    WATER_SUPPLY = "Water Supply"
    WASTE_MANAGEMENT = "Waste Management"
    ROAD_MAINTENANCE = "Road Maintenance"
    STREET_LIGHTING = "Street Lighting"
    TRAFFIC_AND_SAFETY = "Traffic & Safety"


class Priority(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class NotificationPreference(str, Enum):
    EMAIL = "Email"
    IN_APP = "In-App"


class OtpFlow(str, Enum):
    """Which verification flow a one-time code is presented to."""

    SIGNUP = "signup"
    RESET = "reset"


class AuditAction(str, Enum):
    REGISTER = "REGISTER"
    VERIFY_EMAIL = "VERIFY_EMAIL"
    RESET_PASSWORD = "RESET_PASSWORD"
    REQUEST_CREATE = "REQUEST_CREATE"
    REQUEST_STATUS_UPDATE = "REQUEST_STATUS_UPDATE"
    REQUEST_CLOSED = "REQUEST_CLOSED"
    UPDATE_PROFILE = "UPDATE_PROFILE"
    CHANGE_PASSWORD = "CHANGE_PASSWORD"
    DEACTIVATE_ACCOUNT = "DEACTIVATE_ACCOUNT"


class Transaction(Protocol):
    """
    Port for the writes and locked reads of one atomic unit.

    Every method runs inside the same database transaction. Methods taking
    ``lock=True`` hold the row lock until the unit ends (SELECT FOR UPDATE).
    Lookups by email or id only return active users.
    """

    # Credential Store

    def get_user_by_email(self, email: str, *, lock: bool = False) -> "UserRecord | None": ...

    def get_user_by_id(self, user_id: int, *, lock: bool = False) -> "UserRecord | None": ...

    def get_user_by_staff_id(self, staff_id: str) -> "UserRecord | None": ...

    def insert_user(
        self,
        user_code: str,
        email: str,
        password_hash: str,
        full_name: str,
        phone_number: str,
        address: str,
        role: Role,
    ) -> "UserRecord":
        """Insert a user. Raises EmailAlreadyRegistered on a duplicate email."""
        ...

    def store_otp(self, user_id: int, code: str, expires_at: datetime, flow: OtpFlow) -> None:
        """Overwrite the user's single OTP slot."""
        ...

    def clear_otp(self, user_id: int) -> None: ...

    def mark_verified(self, user_id: int) -> None: ...

    def set_password_hash(self, user_id: int, password_hash: str) -> None: ...

    def update_user_details(
        self,
        user_id: int,
        full_name: str | None,
        phone_number: str | None,
        address: str | None,
    ) -> "UserRecord | None": ...

    def deactivate_user(self, user_id: int) -> bool: ...

    def has_staff_record(self, user_id: int) -> bool: ...

    # Citizen profiles

    def insert_citizen(
        self, citizen_code: str, user_id: int, preference: NotificationPreference
    ) -> "CitizenRecord": ...

    def get_citizen_by_user(self, user_id: int, *, lock: bool = False) -> "CitizenRecord | None": ...

    def set_notification_preference(self, citizen_id: int, preference: NotificationPreference) -> None: ...

    def increment_submitted(self, citizen_id: int) -> None:
        """Atomic ``total_requests_submitted + 1``."""
        ...

    def increment_resolved(self, citizen_id: int) -> None:
        """Atomic ``total_requests_resolved + 1``."""
        ...

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
    ) -> "ServiceRequestRecord":
        """Insert a request at Pending."""
        ...

    def get_request(self, request_code: str, *, lock: bool = False) -> "ServiceRequestRecord | None":
        """Load a request together with its owner's user id, email and preference."""
        ...

    def set_request_status(
        self, request_id: int, status: RequestStatus, *, stamp_resolution: bool
    ) -> "ServiceRequestRecord":
        """Persist a status; with stamp_resolution, set resolution_date if unset."""
        ...

    # Audit Trail and notifications

    def append_audit(self, entry: "AuditEntry") -> None: ...

    def insert_notification(
        self,
        notification_code: str,
        recipient_id: int,
        request_id: int | None,
        subject: str,
        message: str,
    ) -> "NotificationRecord": ...


class Store(Protocol):
    """Port for the relational store: atomic units plus read-only queries."""

    def transaction(self) -> AbstractContextManager[Transaction]:
        """
        Open one atomic unit.

        Commits when the block exits cleanly, rolls back when it raises.
        """
        ...

    def list_requests(self, query: "RequestQuery") -> "list[ServiceRequestRecord]": ...

    def list_user_requests(self, user_id: int, limit: int | None = None) -> "list[ServiceRequestRecord]": ...

    def status_counts(self, user_id: int) -> "StatusCounts": ...

    def get_profile(self, user_id: int) -> "Profile | None": ...

    def list_notifications(
        self, user_id: int, unread_only: bool, limit: int, offset: int
    ) -> "tuple[list[NotificationRecord], int]":
        """Return one page of notifications and the total matching count."""
        ...

    def mark_notification_read(self, user_id: int, notification_code: str) -> "NotificationRecord | None": ...

    def mark_all_notifications_read(self, user_id: int) -> int: ...

    def delete_notification(self, user_id: int, notification_code: str) -> "NotificationRecord | None": ...

    def unread_count(self, user_id: int) -> int: ...


class EmailSender(Protocol):
    """Port interface for email delivery."""

    def send(self, to: str, subject: str, body: str) -> None:
        """
        Deliver one message.

        Raises DependencyFailure when the provider cannot be reached.
        """
        ...


class TokenIssuer(Protocol):
    """Port interface for signed session credentials."""

    def issue(self, user: "UserRecord") -> str: ...

    def decode(self, token: str) -> "Principal":
        """Raises Unauthorized for invalid or expired tokens."""
        ...
