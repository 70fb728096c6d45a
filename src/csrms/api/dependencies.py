"""
FastAPI dependencies - Dependency injection factories.

This module provides Depends() factories for injecting domain services,
infrastructure adapters and the caller's identity into routes. Role
checks live here so domain services never see HTTP concerns.
"""

from collections.abc import Callable

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from psycopg_pool import ConnectionPool

from csrms.adapters.repository.postgres import PostgresStore
from csrms.adapters.smtp.console import ConsoleEmailSender
from csrms.adapters.smtp.smtp import SmtpEmailSender
from csrms.adapters.tokens.jwt_issuer import JwtTokenIssuer
from csrms.config.settings import Settings, get_settings
from csrms.domain.accounts import AccountService
from csrms.domain.coordinator import TransactionalCoordinator
from csrms.domain.exceptions import Forbidden, Unauthorized
from csrms.domain.lifecycle import RequestLifecycleService
from csrms.domain.models import Principal
from csrms.domain.notifications import NotificationDispatcher, NotificationInbox
from csrms.domain.otp import OtpService
from csrms.domain.ports import EmailSender, Role, TokenIssuer

# Module-level singleton - ConsoleEmailSender is stateless
_console_sender = ConsoleEmailSender()


def get_pool(request: Request) -> ConnectionPool:
    """
    Get connection pool from app state.

    The pool is created during app lifespan startup and stored in app.state.
    """
    return request.app.state.pool


def get_store(request: Request) -> PostgresStore:
    """Create store with connection pool from app state."""
    return PostgresStore(get_pool(request))


def get_email_sender(settings: Settings = Depends(get_settings)) -> EmailSender:
    """Console sender unless SMTP delivery is configured."""
    if settings.email_backend == "smtp":
        return SmtpEmailSender(
            host=settings.smtp_host,
            port=settings.smtp_port,
            sender=settings.smtp_from,
            username=settings.smtp_user,
            password=settings.smtp_password,
            starttls=settings.smtp_starttls,
            timeout=settings.smtp_timeout_seconds,
        )
    return _console_sender


def get_token_issuer(settings: Settings = Depends(get_settings)) -> TokenIssuer:
    return JwtTokenIssuer(
        secret=settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
        expires_seconds=settings.jwt_expires_seconds,
    )


def get_otp_service(
    store: PostgresStore = Depends(get_store),
    email_sender: EmailSender = Depends(get_email_sender),
    token_issuer: TokenIssuer = Depends(get_token_issuer),
    settings: Settings = Depends(get_settings),
) -> OtpService:
    """Wire the OTP subsystem to the store, mail sender and token issuer."""
    return OtpService(
        coordinator=TransactionalCoordinator(store),
        dispatcher=NotificationDispatcher(email_sender),
        token_issuer=token_issuer,
        ttl_seconds=settings.otp_ttl_seconds,
        bind_flow=settings.otp_bind_flow,
        bcrypt_cost=settings.bcrypt_cost,
    )


def get_account_service(
    store: PostgresStore = Depends(get_store),
    otp: OtpService = Depends(get_otp_service),
    token_issuer: TokenIssuer = Depends(get_token_issuer),
    settings: Settings = Depends(get_settings),
) -> AccountService:
    return AccountService(
        coordinator=TransactionalCoordinator(store),
        store=store,
        otp=otp,
        token_issuer=token_issuer,
        bcrypt_cost=settings.bcrypt_cost,
    )


def get_lifecycle_service(
    store: PostgresStore = Depends(get_store),
    email_sender: EmailSender = Depends(get_email_sender),
    settings: Settings = Depends(get_settings),
) -> RequestLifecycleService:
    return RequestLifecycleService(
        coordinator=TransactionalCoordinator(store),
        dispatcher=NotificationDispatcher(email_sender),
        store=store,
        list_limit=settings.request_list_limit,
    )


def get_inbox(store: PostgresStore = Depends(get_store)) -> NotificationInbox:
    return NotificationInbox(store)


# Bearer token security scheme for OpenAPI documentation
http_bearer = HTTPBearer(auto_error=False)


def get_current_principal(
    credentials: HTTPAuthorizationCredentials | None = Depends(http_bearer),
    token_issuer: TokenIssuer = Depends(get_token_issuer),
) -> Principal:
    """
    Decode the bearer token into the caller's identity.

    Raises:
        Unauthorized: Missing or invalid token
    """
    if credentials is None:
        raise Unauthorized("Missing token")
    return token_issuer.decode(credentials.credentials)


def require_role(*roles: Role) -> Callable[..., Principal]:
    """Dependency factory admitting only callers with one of ``roles``."""

    def dependency(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in roles:
            raise Forbidden("Forbidden")
        return principal

    return dependency


def client_origin(request: Request) -> str | None:
    """Caller address recorded in audit entries."""
    return request.client.host if request.client else None


require_citizen = require_role(Role.CITIZEN)
require_administrator = require_role(Role.ADMINISTRATOR)
