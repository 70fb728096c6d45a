"""
Shared test fixtures and configuration.

This module provides pytest fixtures for:
- An in-memory Store/Transaction pair with real rollback semantics
- A controllable clock for expiry tests
- Domain services wired to the in-memory store and mocked ports
"""

import copy
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest

from csrms.domain.accounts import AccountService
from csrms.domain.coordinator import TransactionalCoordinator
from csrms.domain.exceptions import EmailAlreadyRegistered
from csrms.domain.lifecycle import RequestLifecycleService
from csrms.domain.models import (
    AuditEntry,
    CitizenRecord,
    NotificationRecord,
    Profile,
    RequestQuery,
    ServiceRequestRecord,
    StatusCounts,
    UserRecord,
    utc_now,
)
from csrms.domain.notifications import NotificationDispatcher, NotificationInbox
from csrms.domain.otp import OtpService
from csrms.domain.passwords import hash_password
from csrms.domain.ports import NotificationPreference, RequestStatus, Role


class InjectedFailure(RuntimeError):
    """Raised by the in-memory store where a test asked for a failure."""


@dataclass
class _Tables:
    users: dict[int, UserRecord] = field(default_factory=dict)
    citizens: dict[int, CitizenRecord] = field(default_factory=dict)
    staff: dict[int, tuple[str, str | None]] = field(default_factory=dict)
    requests: dict[int, ServiceRequestRecord] = field(default_factory=dict)
    audit: list[AuditEntry] = field(default_factory=list)
    notifications: dict[int, NotificationRecord] = field(default_factory=dict)
    next_id: int = 1


class InMemoryTransaction:
    """Transaction port over the in-memory tables."""

    def __init__(self, store: "InMemoryStore") -> None:
        self._store = store
        self._t = store.tables

    def _id(self) -> int:
        self._t.next_id += 1
        return self._t.next_id

    # Credential Store

    def get_user_by_email(self, email, *, lock=False):
        return next((u for u in self._t.users.values() if u.email == email and u.is_active), None)

    def get_user_by_id(self, user_id, *, lock=False):
        user = self._t.users.get(user_id)
        return user if user is not None and user.is_active else None

    def get_user_by_staff_id(self, staff_id):
        for user_id, (sid, _) in self._t.staff.items():
            if sid == staff_id:
                return self.get_user_by_id(user_id)
        return None

    def insert_user(self, user_code, email, password_hash, full_name, phone_number, address, role):
        if any(u.email == email for u in self._t.users.values()):
            raise EmailAlreadyRegistered(email)
        user = UserRecord(
            id=self._id(),
            user_code=user_code,
            email=email,
            password_hash=password_hash,
            role=role,
            full_name=full_name,
            phone_number=phone_number,
            address=address,
            registration_date=utc_now(),
        )
        self._t.users[user.id] = user
        return user

    def store_otp(self, user_id, code, expires_at, flow):
        self._store.maybe_fail("store_otp")
        self._update_user(user_id, otp_code=code, otp_expires_at=expires_at, otp_flow=flow)

    def clear_otp(self, user_id):
        self._update_user(user_id, otp_code=None, otp_expires_at=None, otp_flow=None)

    def mark_verified(self, user_id):
        self._update_user(user_id, is_verified=True)

    def set_password_hash(self, user_id, password_hash):
        self._store.maybe_fail("set_password_hash")
        self._update_user(user_id, password_hash=password_hash)

    def update_user_details(self, user_id, full_name, phone_number, address):
        user = self.get_user_by_id(user_id)
        if user is None:
            return None
        return self._update_user(
            user_id,
            full_name=full_name if full_name is not None else user.full_name,
            phone_number=phone_number if phone_number is not None else user.phone_number,
            address=address if address is not None else user.address,
        )

    def deactivate_user(self, user_id):
        if self.get_user_by_id(user_id) is None:
            return False
        self._update_user(user_id, is_active=False)
        return True

    def has_staff_record(self, user_id):
        return user_id in self._t.staff

    def _update_user(self, user_id, **changes):
        user = replace(self._t.users[user_id], **changes)
        self._t.users[user_id] = user
        return user

    # Citizen profiles

    def insert_citizen(self, citizen_code, user_id, preference):
        self._store.maybe_fail("insert_citizen")
        citizen = CitizenRecord(
            id=self._id(), citizen_code=citizen_code, user_id=user_id, notification_preference=preference
        )
        self._t.citizens[citizen.id] = citizen
        return citizen

    def get_citizen_by_user(self, user_id, *, lock=False):
        return next((c for c in self._t.citizens.values() if c.user_id == user_id), None)

    def set_notification_preference(self, citizen_id, preference):
        citizen = self._t.citizens[citizen_id]
        self._t.citizens[citizen_id] = replace(citizen, notification_preference=preference)

    def increment_submitted(self, citizen_id):
        citizen = self._t.citizens[citizen_id]
        self._t.citizens[citizen_id] = replace(
            citizen, total_requests_submitted=citizen.total_requests_submitted + 1
        )

    def increment_resolved(self, citizen_id):
        self._store.maybe_fail("increment_resolved")
        citizen = self._t.citizens[citizen_id]
        self._t.citizens[citizen_id] = replace(
            citizen, total_requests_resolved=citizen.total_requests_resolved + 1
        )

    # Service requests

    def insert_request(
        self, request_code, citizen_id, title, description, category, priority, location, image_path
    ):
        request = ServiceRequestRecord(
            id=self._id(),
            request_code=request_code,
            citizen_id=citizen_id,
            title=title,
            description=description,
            category=category,
            status=RequestStatus.PENDING,
            priority=priority,
            location=location,
            image_path=image_path,
            submission_date=utc_now(),
        )
        self._t.requests[request.id] = request
        return request

    def get_request(self, request_code, *, lock=False):
        request = next((r for r in self._t.requests.values() if r.request_code == request_code), None)
        if request is None:
            return None
        citizen = self._t.citizens[request.citizen_id]
        owner = self._t.users[citizen.user_id]
        return replace(
            request,
            owner_user_id=owner.id,
            owner_email=owner.email,
            owner_preference=citizen.notification_preference,
        )

    def set_request_status(self, request_id, status, *, stamp_resolution):
        self._store.maybe_fail("set_request_status")
        request = self._t.requests[request_id]
        resolution_date = request.resolution_date
        if stamp_resolution and resolution_date is None:
            resolution_date = utc_now()
        updated = replace(request, status=status, resolution_date=resolution_date)
        self._t.requests[request_id] = updated
        return updated

    # Audit Trail and notifications

    def append_audit(self, entry):
        self._store.maybe_fail("append_audit")
        self._t.audit.append(entry)

    def insert_notification(self, notification_code, recipient_id, request_id, subject, message):
        notification = NotificationRecord(
            id=self._id(),
            notification_code=notification_code,
            recipient_id=recipient_id,
            request_id=request_id,
            subject=subject,
            message=message,
            sent_date=utc_now(),
        )
        self._t.notifications[notification.id] = notification
        return notification


class InMemoryStore:
    """
    Store port backed by dictionaries.

    transaction() snapshots every table and restores the snapshot when the
    block raises, so rollback behaves like the database. Units are
    serialized by one lock, which stands in for row locking.
    """

    def __init__(self) -> None:
        self.tables = _Tables()
        self.fail_on: set[str] = set()
        self.commits = 0
        self.rollbacks = 0
        self._lock = threading.RLock()

    def maybe_fail(self, operation: str) -> None:
        if operation in self.fail_on:
            raise InjectedFailure(operation)

    @contextmanager
    def transaction(self) -> Iterator[InMemoryTransaction]:
        with self._lock:
            snapshot = copy.deepcopy(self.tables)
            try:
                yield InMemoryTransaction(self)
            except BaseException:
                self.tables = snapshot
                self.rollbacks += 1
                raise
            self.commits += 1

    # Seeding helpers

    def add_user(
        self,
        email: str = "citizen@example.com",
        password: str | None = None,
        role: Role = Role.CITIZEN,
        with_profile: bool = True,
        staff_id: str | None = None,
        preference: NotificationPreference = NotificationPreference.EMAIL,
    ) -> UserRecord:
        with self.transaction() as tx:
            user = tx.insert_user(
                f"USR-{email[:8]}",
                email,
                hash_password(password) if password else "$2b$10$notarealhash",
                "Test User",
                "0912345678",
                "1 Test Street, Test City",
                role,
            )
            if role is Role.CITIZEN and with_profile:
                tx.insert_citizen(f"CIT-{user.id}", user.id, preference)
            if staff_id is not None:
                self.tables.staff[user.id] = (staff_id, "Public Works")
        return user

    def user(self, user_id: int) -> UserRecord:
        return self.tables.users[user_id]

    def citizen_of(self, user_id: int) -> CitizenRecord:
        return next(c for c in self.tables.citizens.values() if c.user_id == user_id)

    def request(self, request_code: str) -> ServiceRequestRecord:
        return next(r for r in self.tables.requests.values() if r.request_code == request_code)

    @property
    def audit(self) -> list[AuditEntry]:
        return self.tables.audit

    # Store read queries

    def list_requests(self, query: RequestQuery) -> list[ServiceRequestRecord]:
        rows = list(self.tables.requests.values())
        if query.status is not None:
            rows = [r for r in rows if r.status is query.status]
        if query.category is not None:
            rows = [r for r in rows if r.category is query.category]
        if query.priority is not None:
            rows = [r for r in rows if r.priority is query.priority]
        if query.owner_user_id is not None:
            owned = {c.id for c in self.tables.citizens.values() if c.user_id == query.owner_user_id}
            rows = [r for r in rows if r.citizen_id in owned]

        def sort_key(row):
            value = getattr(row, query.sort)
            return value.value if hasattr(value, "value") else value

        rows.sort(key=sort_key, reverse=query.order == "desc")
        return rows[: query.limit]

    def list_user_requests(self, user_id: int, limit: int | None = None) -> list[ServiceRequestRecord]:
        rows = self.list_requests(RequestQuery(owner_user_id=user_id, limit=10_000))
        return rows[:limit] if limit is not None else rows

    def status_counts(self, user_id: int) -> StatusCounts:
        rows = self.list_user_requests(user_id)
        statuses = [r.status for r in rows]
        return StatusCounts(
            total=len(rows),
            pending=statuses.count(RequestStatus.PENDING),
            in_progress=statuses.count(RequestStatus.IN_PROGRESS),
            resolved=statuses.count(RequestStatus.RESOLVED) + statuses.count(RequestStatus.CLOSED),
            rejected=statuses.count(RequestStatus.REJECTED),
        )

    def get_profile(self, user_id: int) -> Profile | None:
        user = self.tables.users.get(user_id)
        if user is None or not user.is_active:
            return None
        citizen = next((c for c in self.tables.citizens.values() if c.user_id == user_id), None)
        staff = self.tables.staff.get(user_id)
        return Profile(
            user=user,
            citizen=citizen,
            staff_id=staff[0] if staff else None,
            department=staff[1] if staff else None,
        )

    def _own_notifications(self, user_id: int) -> list[NotificationRecord]:
        return [n for n in self.tables.notifications.values() if n.recipient_id == user_id]

    def list_notifications(self, user_id, unread_only, limit, offset):
        rows = self._own_notifications(user_id)
        if unread_only:
            rows = [n for n in rows if not n.is_read]
        rows.sort(key=lambda n: (n.sent_date, n.id), reverse=True)
        return rows[offset : offset + limit], len(rows)

    def mark_notification_read(self, user_id, notification_code):
        for n in self._own_notifications(user_id):
            if n.notification_code == notification_code:
                updated = replace(n, is_read=True, read_date=utc_now())
                self.tables.notifications[n.id] = updated
                return updated
        return None

    def mark_all_notifications_read(self, user_id):
        unread = [n for n in self._own_notifications(user_id) if not n.is_read]
        for n in unread:
            self.tables.notifications[n.id] = replace(n, is_read=True, read_date=utc_now())
        return len(unread)

    def delete_notification(self, user_id, notification_code):
        for n in self._own_notifications(user_id):
            if n.notification_code == notification_code:
                return self.tables.notifications.pop(n.id)
        return None

    def unread_count(self, user_id):
        return sum(1 for n in self._own_notifications(user_id) if not n.is_read)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 15, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def email_sender() -> Mock:
    """EmailSender port double; inspect ``send.call_args_list``."""
    return Mock()


@pytest.fixture
def token_issuer() -> Mock:
    issuer = Mock()
    issuer.issue.return_value = "signed-token"
    return issuer


@pytest.fixture
def coordinator(store: InMemoryStore) -> TransactionalCoordinator:
    return TransactionalCoordinator(store)


@pytest.fixture
def dispatcher(email_sender: Mock) -> NotificationDispatcher:
    return NotificationDispatcher(email_sender)


@pytest.fixture
def otp_service(
    coordinator: TransactionalCoordinator,
    dispatcher: NotificationDispatcher,
    token_issuer: Mock,
    clock: FakeClock,
) -> OtpService:
    return OtpService(
        coordinator=coordinator,
        dispatcher=dispatcher,
        token_issuer=token_issuer,
        clock=clock,
    )


@pytest.fixture
def lifecycle(
    coordinator: TransactionalCoordinator, dispatcher: NotificationDispatcher, store: InMemoryStore
) -> RequestLifecycleService:
    return RequestLifecycleService(coordinator=coordinator, dispatcher=dispatcher, store=store)


@pytest.fixture
def accounts(
    coordinator: TransactionalCoordinator,
    store: InMemoryStore,
    otp_service: OtpService,
    token_issuer: Mock,
) -> AccountService:
    return AccountService(coordinator=coordinator, store=store, otp=otp_service, token_issuer=token_issuer)


@pytest.fixture
def inbox(store: InMemoryStore) -> NotificationInbox:
    return NotificationInbox(store)


@pytest.fixture
def citizen(store: InMemoryStore) -> UserRecord:
    """Active citizen with a profile and zeroed counters."""
    return store.add_user("citizen@example.com")


@pytest.fixture
def admin(store: InMemoryStore) -> UserRecord:
    return store.add_user("admin@example.com", role=Role.ADMINISTRATOR, staff_id="UGR/0001")


def sent_codes(email_sender: Mock) -> list[str]:
    """Codes contained in every message the sender received, oldest first."""
    codes = []
    for call in email_sender.send.call_args_list:
        body = call.args[2]
        codes.append(next(word for word in body.replace(".", " ").split() if word.isdigit()))
    return codes


@pytest.fixture
def mailed_codes(email_sender: Mock):
    """Return a function giving every mailed code, oldest first."""
    return lambda: sent_codes(email_sender)


@pytest.fixture
def last_code(email_sender: Mock):
    """Return a function giving the most recently mailed code."""
    return lambda: sent_codes(email_sender)[-1]
