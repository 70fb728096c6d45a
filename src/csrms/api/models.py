"""
API request and response models.

Pydantic models for FastAPI endpoint validation and OpenAPI schema generation.
Field limits here are the boundary validation for the whole service.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from csrms.domain.models import (
    CitizenRecord,
    NotificationRecord,
    Profile,
    ServiceRequestRecord,
    StatusCounts,
    UserRecord,
)
from csrms.domain.otp import DEFAULT_CODE_LENGTH
from csrms.domain.ports import (
    Category,
    NotificationPreference,
    OtpFlow,
    Priority,
    RequestStatus,
    Role,
)

OTP_PATTERN = rf"^\d{{{DEFAULT_CODE_LENGTH}}}$"


class RegisterRequest(BaseModel):
    """Request model for user registration."""

    model_config = ConfigDict(populate_by_name=True)

    email: EmailStr
    password: str = Field(..., min_length=8, description="User password (min 8 characters)")
    full_name: str = Field(..., alias="fullName", min_length=3, max_length=150)
    phone_number: str = Field(..., alias="phoneNumber", min_length=9, max_length=20)
    address: str = Field(..., min_length=10, max_length=200)
    role: Role = Role.CITIZEN


class RegisterResponse(BaseModel):
    """Response model for successful registration."""

    message: str
    email: str
    expires_in_seconds: int


class VerifyCodeRequest(BaseModel):
    """Request model for submitting a one-time code."""

    email: EmailStr
    otp: str = Field(..., pattern=OTP_PATTERN, description="6-digit one-time code")


class ResendCodeRequest(BaseModel):
    email: EmailStr
    flow: OtpFlow = OtpFlow.SIGNUP


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: EmailStr
    otp: str = Field(..., pattern=OTP_PATTERN)
    new_password: str = Field(..., alias="newPassword", min_length=8)


class LoginRequest(BaseModel):
    identifier: str = Field(..., min_length=1, description="Email, or staff id (UGR/...) for administrators")
    password: str = Field(..., min_length=1)


class TokenResponse(BaseModel):
    token: str


class UserSummary(BaseModel):
    id: int
    email: str
    role: Role

    @classmethod
    def from_record(cls, user: UserRecord) -> "UserSummary":
        return cls(id=user.id, email=user.email, role=user.role)


class LoginResponse(BaseModel):
    token: str
    user: UserSummary


class MessageResponse(BaseModel):
    message: str


class CreateServiceRequest(BaseModel):
    """Request model for submitting a service request."""

    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(..., min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    category: Category
    location: str = Field(..., min_length=5, max_length=200)
    image_path: str | None = Field(default=None, alias="imagePath", max_length=500)
    priority: Priority = Priority.MEDIUM


class UpdateStatusRequest(BaseModel):
    status: RequestStatus
    note: str | None = Field(default=None, max_length=500)


class ServiceRequestResponse(BaseModel):
    request_id: str
    title: str
    description: str | None
    category: Category
    status: RequestStatus
    priority: Priority
    location: str
    image_path: str | None
    submission_date: datetime | None
    resolution_date: datetime | None

    @classmethod
    def from_record(cls, request: ServiceRequestRecord) -> "ServiceRequestResponse":
        return cls(
            request_id=request.request_code,
            title=request.title,
            description=request.description,
            category=request.category,
            status=request.status,
            priority=request.priority,
            location=request.location,
            image_path=request.image_path,
            submission_date=request.submission_date,
            resolution_date=request.resolution_date,
        )


class ServiceRequestEnvelope(BaseModel):
    request: ServiceRequestResponse


class ServiceRequestList(BaseModel):
    requests: list[ServiceRequestResponse]


class StatusUpdateResponse(BaseModel):
    success: bool
    request_id: str
    status: RequestStatus
    notified: bool


class StatusCountsResponse(BaseModel):
    total: int
    pending: int
    in_progress: int
    resolved: int
    rejected: int

    @classmethod
    def from_counts(cls, counts: StatusCounts) -> "StatusCountsResponse":
        return cls(
            total=counts.total,
            pending=counts.pending,
            in_progress=counts.in_progress,
            resolved=counts.resolved,
            rejected=counts.rejected,
        )


class CitizenProfileResponse(BaseModel):
    citizen_id: str
    notification_preference: NotificationPreference
    total_requests_submitted: int
    total_requests_resolved: int

    @classmethod
    def from_record(cls, citizen: CitizenRecord) -> "CitizenProfileResponse":
        return cls(
            citizen_id=citizen.citizen_code,
            notification_preference=citizen.notification_preference,
            total_requests_submitted=citizen.total_requests_submitted,
            total_requests_resolved=citizen.total_requests_resolved,
        )


class ProfileResponse(BaseModel):
    id: int
    user_id: str
    email: str
    full_name: str
    phone_number: str | None
    address: str | None
    role: Role
    is_verified: bool
    registration_date: datetime | None
    citizen: CitizenProfileResponse | None = None
    staff_id: str | None = None
    department: str | None = None

    @classmethod
    def from_profile(cls, profile: Profile) -> "ProfileResponse":
        user = profile.user
        return cls(
            id=user.id,
            user_id=user.user_code,
            email=user.email,
            full_name=user.full_name,
            phone_number=user.phone_number,
            address=user.address,
            role=user.role,
            is_verified=user.is_verified,
            registration_date=user.registration_date,
            citizen=CitizenProfileResponse.from_record(profile.citizen) if profile.citizen else None,
            staff_id=profile.staff_id,
            department=profile.department,
        )


class ProfileEnvelope(BaseModel):
    user: ProfileResponse


class UpdateProfileRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    full_name: str | None = Field(default=None, alias="fullName", min_length=3, max_length=150)
    phone_number: str | None = Field(default=None, alias="phoneNumber", min_length=9, max_length=20)
    address: str | None = Field(default=None, min_length=10, max_length=200)
    notification_preference: NotificationPreference | None = Field(
        default=None, alias="notificationPreference"
    )


class ChangePasswordRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    old_password: str = Field(..., alias="oldPassword", min_length=1)
    new_password: str = Field(..., alias="newPassword", min_length=8)


class DashboardResponse(BaseModel):
    profile: ProfileResponse
    recent_requests: list[ServiceRequestResponse]
    stats: StatusCountsResponse


class NotificationResponse(BaseModel):
    notification_id: str
    subject: str
    message: str
    is_read: bool
    sent_date: datetime | None
    read_date: datetime | None

    @classmethod
    def from_record(cls, notification: NotificationRecord) -> "NotificationResponse":
        return cls(
            notification_id=notification.notification_code,
            subject=notification.subject,
            message=notification.message,
            is_read=notification.is_read,
            sent_date=notification.sent_date,
            read_date=notification.read_date,
        )


class Pagination(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int


class NotificationList(BaseModel):
    notifications: list[NotificationResponse]
    pagination: Pagination


class NotificationEnvelope(BaseModel):
    message: str
    notification: NotificationResponse


class UpdatedCountResponse(BaseModel):
    message: str
    updated_count: int


class UnreadCountResponse(BaseModel):
    unread_count: int


class ErrorResponse(BaseModel):
    """Standard error response model."""

    detail: str
