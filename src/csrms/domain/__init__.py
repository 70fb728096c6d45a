"""
Domain layer - Pure business logic with zero framework imports.

This package contains the request lifecycle state machine, the one-time
code verification subsystem and the transactional coordinator that binds
state changes, counters and audit entries into single units. It defines
its own port interfaces for infrastructure abstraction.
"""

from .accounts import AccountService
from .coordinator import TransactionalCoordinator
from .exceptions import (
    Conflict,
    CsrmsError,
    DependencyFailure,
    EmailAlreadyRegistered,
    Forbidden,
    InvalidCredential,
    InvalidTransition,
    NotFound,
    Unauthorized,
    ValidationError,
)
from .lifecycle import TRANSITIONS, RequestLifecycleService, StatusChange, allowed_targets
from .notifications import NotificationDispatcher, NotificationInbox
from .otp import OtpService
from .ports import (
    AuditAction,
    Category,
    EmailSender,
    NotificationPreference,
    OtpFlow,
    Priority,
    RequestStatus,
    Role,
    Store,
    TokenIssuer,
    Transaction,
)

__all__ = [
    "TRANSITIONS",
    "AccountService",
    "AuditAction",
    "Category",
    "Conflict",
    "CsrmsError",
    "DependencyFailure",
    "EmailAlreadyRegistered",
    "EmailSender",
    "Forbidden",
    "InvalidCredential",
    "InvalidTransition",
    "NotFound",
    "NotificationDispatcher",
    "NotificationInbox",
    "NotificationPreference",
    "OtpFlow",
    "OtpService",
    "Priority",
    "RequestLifecycleService",
    "RequestStatus",
    "Role",
    "StatusChange",
    "Store",
    "TokenIssuer",
    "Transaction",
    "Unauthorized",
    "ValidationError",
    "allowed_targets",
]
