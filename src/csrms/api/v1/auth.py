"""
API v1 authentication routes.

Registration, signup verification, login and the password reset flow.
One-time codes are 6 digits and expire after 10 minutes.
"""

from fastapi import APIRouter, Depends, Request, status

from csrms.api.dependencies import (
    client_origin,
    get_account_service,
    get_otp_service,
)
from csrms.api.models import (
    ErrorResponse,
    ForgotPasswordRequest,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    RegisterRequest,
    RegisterResponse,
    ResendCodeRequest,
    ResetPasswordRequest,
    TokenResponse,
    UserSummary,
    VerifyCodeRequest,
)
from csrms.config.settings import get_settings
from csrms.domain.accounts import AccountService
from csrms.domain.otp import OtpService
from csrms.domain.ports import OtpFlow

router = APIRouter(prefix="/auth", tags=["auth"])

_invalid_code = {401: {"model": ErrorResponse, "description": "Invalid or expired code"}}


@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        409: {"model": ErrorResponse, "description": "Email already registered"},
        422: {"description": "Validation error"},
    },
    summary="Register a new user",
    description="Create an account and send a 6-digit verification code to the email address.",
)
def register(
    request_data: RegisterRequest,
    request: Request,
    service: AccountService = Depends(get_account_service),
) -> RegisterResponse:
    """
    Register a new user and send verification code.

    - **email**: Valid email address to register
    - **password**: Password (minimum 8 characters)
    - **role**: Citizen (default) or Administrator
    """
    normalized_email = service.register(
        email=request_data.email,
        password=request_data.password,
        full_name=request_data.full_name,
        phone_number=request_data.phone_number,
        address=request_data.address,
        role=request_data.role,
        origin=client_origin(request),
    )
    return RegisterResponse(
        message="OTP sent to email",
        email=normalized_email,
        expires_in_seconds=get_settings().otp_ttl_seconds,
    )


@router.post(
    "/verify-email",
    response_model=TokenResponse,
    responses={
        **_invalid_code,
        403: {"model": ErrorResponse, "description": "Citizen or staff record missing"},
    },
    summary="Confirm email with signup code",
)
def verify_email(
    request_data: VerifyCodeRequest,
    service: OtpService = Depends(get_otp_service),
) -> TokenResponse:
    """Mark the account verified and return a session token."""
    token = service.verify_code(request_data.email, request_data.otp, OtpFlow.SIGNUP)
    return TokenResponse(token=token)


@router.post(
    "/resend-code",
    response_model=MessageResponse,
    responses={404: {"model": ErrorResponse, "description": "User not found (reset flow)"}},
    summary="Issue a new one-time code",
    description="Any previously issued code stops being accepted.",
)
def resend_code(
    request_data: ResendCodeRequest,
    service: OtpService = Depends(get_otp_service),
) -> MessageResponse:
    service.resend_code(request_data.email, request_data.flow)
    return MessageResponse(message="Code sent to email")


@router.post(
    "/login",
    response_model=LoginResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid credentials"},
        403: {"model": ErrorResponse, "description": "Role profile missing"},
    },
    summary="Log in with email or staff id",
)
def login(
    request_data: LoginRequest,
    service: AccountService = Depends(get_account_service),
) -> LoginResponse:
    result = service.login(request_data.identifier, request_data.password)
    return LoginResponse(token=result.token, user=UserSummary.from_record(result.user))


@router.post(
    "/forgot-password",
    response_model=MessageResponse,
    responses={404: {"model": ErrorResponse, "description": "User not found"}},
    summary="Send a password reset code",
)
def forgot_password(
    request_data: ForgotPasswordRequest,
    service: OtpService = Depends(get_otp_service),
) -> MessageResponse:
    service.issue_code(request_data.email, OtpFlow.RESET)
    return MessageResponse(message="Reset code sent to email")


@router.post(
    "/verify-reset",
    response_model=MessageResponse,
    responses=_invalid_code,
    summary="Check a password reset code",
    description="The code stays valid; submit it again with the new password.",
)
def verify_reset(
    request_data: VerifyCodeRequest,
    service: OtpService = Depends(get_otp_service),
) -> MessageResponse:
    service.verify_code(request_data.email, request_data.otp, OtpFlow.RESET)
    return MessageResponse(message="OTP verified, proceed to reset password")


@router.post(
    "/reset-password",
    response_model=MessageResponse,
    responses=_invalid_code,
    summary="Reset password with a verified code",
)
def reset_password(
    request_data: ResetPasswordRequest,
    service: OtpService = Depends(get_otp_service),
) -> MessageResponse:
    service.consume_code_for_reset(request_data.email, request_data.otp, request_data.new_password)
    return MessageResponse(message="Password reset successful")
