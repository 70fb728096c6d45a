"""
OTP Verification Subsystem - short-lived numeric codes bound to an email.

One-Time Code Lifecycle
=======================

Each user has a single OTP slot (code, expiry, issuing flow). Issuing a
code overwrites the slot, which implicitly invalidates any older
unconsumed code.

Flows (tag supplied by the caller):
- signup: verify_code() marks the user verified, clears the slot and
  returns a session token, provided the role record (citizen profile
  or staff record) exists.
- reset:  verify_code() only confirms the code; the slot is cleared by
  consume_code_for_reset() together with the password change.

A code is rejected (InvalidCredential) when the user is unknown, the code
does not match, or ``now > expires_at``. All reads and writes of the slot
happen under the user's row lock, so a reissue and a verify for the same
user serialize.

Rate limiting of issue/resend is not enforced here.
"""

import logging
import secrets
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from . import audit
from .access import require_role_profile
from .coordinator import TransactionalCoordinator
from .exceptions import InvalidCredential, NotFound
from .models import UserRecord, utc_now
from .notifications import NotificationDispatcher
from .passwords import hash_password
from .ports import AuditAction, OtpFlow, TokenIssuer, Transaction

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 600
DEFAULT_CODE_LENGTH = 6

_INVALID_CODE = "Invalid or expired code"


@dataclass
class OtpService:
    """
    Domain service for one-time code issuance and verification.

    Persistence goes through the coordinator; delivery goes through the
    dispatcher after the unit has committed.
    """

    coordinator: TransactionalCoordinator
    dispatcher: NotificationDispatcher
    token_issuer: TokenIssuer
    ttl_seconds: int = DEFAULT_TTL_SECONDS
    code_length: int = DEFAULT_CODE_LENGTH
    bind_flow: bool = False
    bcrypt_cost: int = 10
    clock: Callable[[], datetime] = field(default=utc_now)

    def issue_code(self, email: str, flow: OtpFlow) -> None:
        """
        Issue a fresh code for ``email`` and send it.

        Raises:
            NotFound: No active user for the reset flow. The signup flow
                tolerates unknown addresses and returns silently.
        """
        normalized_email = self._normalize_email(email)

        with self.coordinator.unit("issue_code") as tx:
            user = tx.get_user_by_email(normalized_email, lock=True)
            if user is None:
                if flow is OtpFlow.SIGNUP:
                    logger.info("Code requested for unknown address, nothing issued")
                    return
                raise NotFound("User not found")
            code = self.issue_within(tx, user, flow)

        self.deliver(normalized_email, code, flow)

    def resend_code(self, email: str, flow: OtpFlow = OtpFlow.SIGNUP) -> None:
        """Issue again; the previous code stops validating."""
        self.issue_code(email, flow)

    def issue_within(self, tx: Transaction, user: UserRecord, flow: OtpFlow) -> str:
        """
        Stamp a new code on ``user`` inside an already-open unit.

        The caller delivers the returned code once the unit has committed.
        """
        code = self._generate_code()
        expires_at = self.clock() + timedelta(seconds=self.ttl_seconds)
        tx.store_otp(user.id, code, expires_at, flow)
        logger.info("Issued %s code for user %s", flow.value, user.user_code)
        return code

    def deliver(self, email: str, code: str, flow: OtpFlow) -> bool:
        minutes = self.ttl_seconds // 60
        if flow is OtpFlow.RESET:
            subject = "CSRMS Password Reset Code"
            body = f"Your password reset code is {code}. It expires in {minutes} minutes."
        else:
            subject = "CSRMS verification code"
            body = f"Your verification code is {code}. It expires in {minutes} minutes."
        return self.dispatcher.dispatch(email, subject, body)

    def verify_code(self, email: str, code: str, flow: OtpFlow) -> str | None:
        """
        Check a code for the given flow.

        Returns:
            A session token for the signup flow, None for the reset flow
            (the code stays valid until consume_code_for_reset()).

        Raises:
            InvalidCredential: Unknown user, wrong code, or expired code
            Forbidden: Signup code for a user whose role record is missing
        """
        normalized_email = self._normalize_email(email)

        with self.coordinator.unit("verify_code") as tx:
            user = self._locked_user_with_valid_code(tx, normalized_email, code, flow)
            if flow is OtpFlow.RESET:
                return None

            require_role_profile(tx, user)
            tx.mark_verified(user.id)
            tx.clear_otp(user.id)
            audit.record(tx, user.id, AuditAction.VERIFY_EMAIL, f"Verified {normalized_email}")

        return self.token_issuer.issue(user)

    def consume_code_for_reset(self, email: str, code: str, new_password: str) -> None:
        """
        Replace the password and clear the code in one unit.

        Raises:
            InvalidCredential: Same conditions as verify_code()
        """
        normalized_email = self._normalize_email(email)

        with self.coordinator.unit("reset_password") as tx:
            user = self._locked_user_with_valid_code(tx, normalized_email, code, OtpFlow.RESET)
            tx.set_password_hash(user.id, hash_password(new_password, self.bcrypt_cost))
            tx.clear_otp(user.id)
            audit.record(tx, user.id, AuditAction.RESET_PASSWORD, "Password reset with code")

    def _locked_user_with_valid_code(
        self, tx: Transaction, email: str, code: str, flow: OtpFlow
    ) -> UserRecord:
        user = tx.get_user_by_email(email, lock=True)
        if user is None or user.otp_code is None or user.otp_expires_at is None:
            raise InvalidCredential(_INVALID_CODE)

        code_valid = secrets.compare_digest(user.otp_code.encode(), code.encode())
        if not code_valid or self.clock() > user.otp_expires_at:
            raise InvalidCredential(_INVALID_CODE)

        if self.bind_flow and user.otp_flow is not None and user.otp_flow != flow:
            raise InvalidCredential(_INVALID_CODE)

        return user

    def _normalize_email(self, email: str) -> str:
        """
        Normalize email address for consistent storage and lookup.

        Applies: strip whitespace + lowercase
        """
        return email.strip().lower()

    def _generate_code(self) -> str:
        """
        Generate a cryptographically secure numeric code.

        Returns string to preserve leading zeros.
        """
        return "".join(secrets.choice("0123456789") for _ in range(self.code_length))
