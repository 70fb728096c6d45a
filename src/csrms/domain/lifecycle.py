"""
Request Lifecycle State Machine - guarded status transitions.

Service Request Lifecycle
=========================

States:
- Pending:     initial state at creation
- In Progress: an administrator is working on the request
- Resolved:    work is done, awaiting closure (or reopen)
- Closed:      terminal
- Rejected:    terminal, reachable from validation paths only

Valid Transitions (TRANSITIONS table below):
    Pending     -> In Progress
    In Progress -> Resolved, Pending (revert)
    Resolved    -> Closed, In Progress (reopen)
    Closed      -> none
    Rejected    -> none

Every status change runs read-guard-write inside one unit holding the
request row lock, so concurrent updates of one request serialize and the
guard always sees the freshest status. The owner's resolved counter is
incremented once, the first time a request reaches Resolved; later
reopen/resolve cycles find ``resolution_date`` already set. Mail goes out
only after commit.
"""

import logging
from dataclasses import dataclass

from . import audit
from .coordinator import TransactionalCoordinator
from .exceptions import Conflict, Forbidden, InvalidTransition, NotFound, ValidationError
from .models import RequestQuery, ServiceRequestRecord, StatusCounts, new_code
from .notifications import NotificationDispatcher
from .ports import (
    AuditAction,
    Category,
    NotificationPreference,
    Priority,
    RequestStatus,
    Store,
    Transaction,
)

logger = logging.getLogger(__name__)

TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
    RequestStatus.PENDING: frozenset({RequestStatus.IN_PROGRESS}),
    RequestStatus.IN_PROGRESS: frozenset({RequestStatus.RESOLVED, RequestStatus.PENDING}),
    RequestStatus.RESOLVED: frozenset({RequestStatus.CLOSED, RequestStatus.IN_PROGRESS}),
    RequestStatus.CLOSED: frozenset(),
    RequestStatus.REJECTED: frozenset(),
}

TERMINAL_STATUSES = frozenset({RequestStatus.CLOSED, RequestStatus.REJECTED})

# Statuses close() accepts as a starting point.
CLOSABLE_STATUSES = frozenset(
    {RequestStatus.PENDING, RequestStatus.IN_PROGRESS, RequestStatus.RESOLVED}
)

SORTABLE_COLUMNS = frozenset({"submission_date", "priority", "status"})


def allowed_targets(status: RequestStatus) -> frozenset[RequestStatus]:
    """Statuses reachable from ``status`` in one step."""
    return TRANSITIONS[status]


def can_transition(current: RequestStatus, target: RequestStatus) -> bool:
    return target in TRANSITIONS[current]


@dataclass(frozen=True)
class StatusChange:
    """
    Outcome of a committed status change.

    ``notified`` is False when the change is committed but the owner's
    mail could not be delivered (or the owner opted out of mail).
    """

    request: ServiceRequestRecord
    previous_status: RequestStatus
    notified: bool


@dataclass
class RequestLifecycleService:
    """Domain service owning creation and status changes of service requests."""

    coordinator: TransactionalCoordinator
    dispatcher: NotificationDispatcher
    store: Store
    list_limit: int = 100

    def create(
        self,
        citizen_user_id: int,
        title: str,
        description: str | None,
        category: Category | str,
        location: str,
        image_path: str | None = None,
        priority: Priority | str = Priority.MEDIUM,
        origin: str | None = None,
    ) -> ServiceRequestRecord:
        """
        Submit a new request at Pending and count it for the citizen.

        Raises:
            ValidationError: Unknown category or priority
            Forbidden: The user has no citizen profile
        """
        category = _parse_enum(Category, category, "category")
        priority = _parse_enum(Priority, priority, "priority")

        with self.coordinator.unit("create_request") as tx:
            citizen = tx.get_citizen_by_user(citizen_user_id, lock=True)
            if citizen is None:
                raise Forbidden("Citizen profile not found")

            request = tx.insert_request(
                request_code=new_code("REQ"),
                citizen_id=citizen.id,
                title=title,
                description=description,
                category=category,
                priority=priority,
                location=location,
                image_path=image_path,
            )
            tx.increment_submitted(citizen.id)
            audit.record(
                tx,
                citizen_user_id,
                AuditAction.REQUEST_CREATE,
                f"Created {request.request_code}",
                origin,
            )

        logger.info("Request %s created", request.request_code)
        return request

    def update_status(
        self,
        request_code: str,
        target_status: RequestStatus | str,
        note: str | None = None,
        actor_id: int | None = None,
        origin: str | None = None,
    ) -> StatusChange:
        """
        Move a request along one edge of the transition table.

        Raises:
            ValidationError: ``target_status`` is not a status
            NotFound: No such request
            Conflict: The request is in a terminal status
            InvalidTransition: The edge is not in TRANSITIONS
        """
        target = _parse_enum(RequestStatus, target_status, "status")

        with self.coordinator.unit("update_status") as tx:
            current = self._locked_request(tx, request_code)
            previous = current.status

            if previous in TERMINAL_STATUSES:
                raise Conflict(f"Request already {previous.value.lower()}")
            if not can_transition(previous, target):
                raise InvalidTransition(previous.value, target.value)

            first_resolution = target is RequestStatus.RESOLVED and current.resolution_date is None
            updated = tx.set_request_status(current.id, target, stamp_resolution=first_resolution)
            if first_resolution:
                tx.increment_resolved(current.citizen_id)

            detail = f"{request_code}: {previous.value} -> {target.value}"
            if note:
                detail += f" | note: {note}"
            audit.record(tx, actor_id, AuditAction.REQUEST_STATUS_UPDATE, detail, origin)

            subject, body = _status_message(request_code, target, note)
            if current.owner_user_id is not None:
                tx.insert_notification(new_code("NTF"), current.owner_user_id, current.id, subject, body)

        logger.info("Request %s moved %s -> %s", request_code, previous.value, target.value)
        notified = self._notify_owner(current, subject, body)
        return StatusChange(request=updated, previous_status=previous, notified=notified)

    def close(
        self, request_code: str, actor_id: int | None = None, origin: str | None = None
    ) -> ServiceRequestRecord:
        """
        Force a request to Closed from Pending, In Progress or Resolved.

        Raises:
            NotFound: No such request
            Conflict: The request is already closed (or rejected)
        """
        with self.coordinator.unit("close_request") as tx:
            current = self._locked_request(tx, request_code)
            if current.status not in CLOSABLE_STATUSES:
                raise Conflict(f"Request already {current.status.value.lower()}")

            closed = tx.set_request_status(current.id, RequestStatus.CLOSED, stamp_resolution=True)
            audit.record(tx, actor_id, AuditAction.REQUEST_CLOSED, f"Closed {request_code}", origin)

        logger.info("Request %s closed", request_code)
        return closed

    def list_requests(self, query: RequestQuery) -> list[ServiceRequestRecord]:
        """Filtered listing; unknown sort columns fall back to submission_date."""
        sort = query.sort if query.sort in SORTABLE_COLUMNS else "submission_date"
        order = "asc" if (query.order or "").lower() == "asc" else "desc"
        limit = min(query.limit, self.list_limit) if query.limit > 0 else self.list_limit
        return self.store.list_requests(
            RequestQuery(
                status=query.status,
                category=query.category,
                priority=query.priority,
                sort=sort,
                order=order,
                owner_user_id=query.owner_user_id,
                limit=limit,
            )
        )

    def my_requests(self, user_id: int, limit: int | None = None) -> list[ServiceRequestRecord]:
        return self.store.list_user_requests(user_id, limit)

    def status_counts(self, user_id: int) -> StatusCounts:
        return self.store.status_counts(user_id)

    def _locked_request(self, tx: Transaction, request_code: str) -> ServiceRequestRecord:
        request = tx.get_request(request_code, lock=True)
        if request is None:
            raise NotFound("Request not found")
        return request

    def _notify_owner(self, request: ServiceRequestRecord, subject: str, body: str) -> bool:
        if request.owner_email is None:
            return False
        if request.owner_preference not in (None, NotificationPreference.EMAIL):
            return False
        return self.dispatcher.dispatch(request.owner_email, subject, body)


def _status_message(request_code: str, status: RequestStatus, note: str | None) -> tuple[str, str]:
    body = f"Your request {request_code} status changed to: {status.value}"
    if note:
        body += f"\nNote: {note}"
    return f"CSRMS Update: {request_code}", body


def _parse_enum(enum_cls, value, field_name: str):
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError(f"Invalid {field_name}: {value!r}") from None
