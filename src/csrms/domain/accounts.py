"""
Accounts domain service - registration, login and profile management.

Registration creates the user, the citizen profile, the signup code and
the audit entry in one unit; the code is mailed only after commit.
"""

import logging
from dataclasses import dataclass

from . import audit
from .access import require_role_profile
from .coordinator import TransactionalCoordinator
from .exceptions import EmailAlreadyRegistered, InvalidCredential, NotFound, ValidationError
from .lifecycle import RequestLifecycleService
from .models import Profile, ServiceRequestRecord, StatusCounts, UserRecord, new_code
from .otp import OtpService
from .passwords import check_password, hash_password
from .ports import AuditAction, NotificationPreference, OtpFlow, Role, Store, TokenIssuer

logger = logging.getLogger(__name__)

STAFF_ID_PREFIX = "UGR/"


@dataclass(frozen=True)
class LoginResult:
    token: str
    user: UserRecord


@dataclass(frozen=True)
class Dashboard:
    profile: Profile
    recent_requests: list[ServiceRequestRecord]
    stats: StatusCounts


@dataclass
class AccountService:
    """
    Domain service for user accounts.

    Orchestrates email normalization, password hashing, profile creation
    and the signup code hand-off to the OTP subsystem.
    """

    coordinator: TransactionalCoordinator
    store: Store
    otp: OtpService
    token_issuer: TokenIssuer
    bcrypt_cost: int = 10

    def register(
        self,
        email: str,
        password: str,
        full_name: str,
        phone_number: str,
        address: str,
        role: Role | str = Role.CITIZEN,
        origin: str | None = None,
    ) -> str:
        """
        Register a user and send the signup code.

        Returns:
            Normalized email address

        Raises:
            EmailAlreadyRegistered: An active account already uses the email
        """
        try:
            role = Role(role)
        except ValueError:
            raise ValidationError(f"Invalid role: {role!r}") from None

        normalized_email = self._normalize_email(email)
        password_hash = hash_password(password, self.bcrypt_cost)

        with self.coordinator.unit("register") as tx:
            if tx.get_user_by_email(normalized_email) is not None:
                raise EmailAlreadyRegistered(normalized_email)

            user = tx.insert_user(
                user_code=new_code("USR"),
                email=normalized_email,
                password_hash=password_hash,
                full_name=full_name,
                phone_number=phone_number,
                address=address,
                role=role,
            )
            if role is Role.CITIZEN:
                tx.insert_citizen(new_code("CIT"), user.id, NotificationPreference.EMAIL)

            code = self.otp.issue_within(tx, user, OtpFlow.SIGNUP)
            detail = f"User {normalized_email} ({role.value})"
            audit.record(tx, user.id, AuditAction.REGISTER, detail, origin)

        logger.info("Registered user %s", user.user_code)
        self.otp.deliver(normalized_email, code, OtpFlow.SIGNUP)
        return normalized_email

    def login(self, identifier: str, password: str) -> LoginResult:
        """
        Authenticate by email, or by staff id for administrators.

        Raises:
            InvalidCredential: Unknown identifier or wrong password
            Forbidden: The role's profile record is missing
        """
        identifier = identifier.strip()

        with self.coordinator.unit("login") as tx:
            if identifier.upper().startswith(STAFF_ID_PREFIX):
                user = tx.get_user_by_staff_id(identifier)
            else:
                user = tx.get_user_by_email(self._normalize_email(identifier))

            # bcrypt runs even for unknown identifiers
            password_valid = check_password(password, user.password_hash if user else None)
            if user is None or not password_valid:
                raise InvalidCredential("Invalid credentials")

            require_role_profile(tx, user)

        return LoginResult(token=self.token_issuer.issue(user), user=user)

    def profile(self, user_id: int) -> Profile:
        profile = self.store.get_profile(user_id)
        if profile is None:
            raise NotFound("User not found")
        return profile

    def update_profile(
        self,
        user_id: int,
        full_name: str | None = None,
        phone_number: str | None = None,
        address: str | None = None,
        notification_preference: NotificationPreference | str | None = None,
        origin: str | None = None,
    ) -> UserRecord:
        """Update contact details; only given fields change."""
        if notification_preference is not None:
            try:
                notification_preference = NotificationPreference(notification_preference)
            except ValueError:
                raise ValidationError(
                    f"Invalid notification preference: {notification_preference!r}"
                ) from None

        with self.coordinator.unit("update_profile") as tx:
            user = tx.update_user_details(user_id, full_name, phone_number, address)
            if user is None:
                raise NotFound("User not found")

            if notification_preference is not None and user.role is Role.CITIZEN:
                citizen = tx.get_citizen_by_user(user_id, lock=True)
                if citizen is not None:
                    tx.set_notification_preference(citizen.id, notification_preference)

            audit.record(tx, user_id, AuditAction.UPDATE_PROFILE, "User profile updated", origin)

        return user

    def change_password(
        self, user_id: int, old_password: str, new_password: str, origin: str | None = None
    ) -> None:
        """
        Replace the password after checking the current one.

        Raises:
            NotFound: No active user
            InvalidCredential: The current password is wrong
        """
        with self.coordinator.unit("change_password") as tx:
            user = tx.get_user_by_id(user_id, lock=True)
            if user is None:
                raise NotFound("User not found")
            if not check_password(old_password, user.password_hash):
                raise InvalidCredential("Current password is incorrect")

            tx.set_password_hash(user_id, hash_password(new_password, self.bcrypt_cost))
            audit.record(tx, user_id, AuditAction.CHANGE_PASSWORD, "Password changed successfully", origin)

    def deactivate(self, user_id: int, origin: str | None = None) -> None:
        """Soft-delete the account."""
        with self.coordinator.unit("deactivate") as tx:
            if not tx.deactivate_user(user_id):
                raise NotFound("User not found")
            audit.record(tx, user_id, AuditAction.DEACTIVATE_ACCOUNT, "Account deactivated", origin)

        logger.info("User %s deactivated", user_id)

    def dashboard(self, user_id: int, lifecycle: RequestLifecycleService) -> Dashboard:
        return Dashboard(
            profile=self.profile(user_id),
            recent_requests=lifecycle.my_requests(user_id, limit=5),
            stats=lifecycle.status_counts(user_id),
        )

    def _normalize_email(self, email: str) -> str:
        """
        Normalize email address for consistent storage and lookup.

        Applies: strip whitespace + lowercase
        """
        return email.strip().lower()
