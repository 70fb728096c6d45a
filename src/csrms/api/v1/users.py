"""
API v1 user routes.

Profile, password change, soft deactivation and the dashboard summary.
"""

from fastapi import APIRouter, Depends, Request

from csrms.api.dependencies import (
    client_origin,
    get_account_service,
    get_current_principal,
    get_lifecycle_service,
)
from csrms.api.models import (
    ChangePasswordRequest,
    DashboardResponse,
    ErrorResponse,
    MessageResponse,
    ProfileEnvelope,
    ProfileResponse,
    ServiceRequestResponse,
    StatusCountsResponse,
    UpdateProfileRequest,
)
from csrms.domain.accounts import AccountService
from csrms.domain.lifecycle import RequestLifecycleService
from csrms.domain.models import Principal

router = APIRouter(prefix="/users", tags=["users"])

_not_found = {404: {"model": ErrorResponse, "description": "User not found"}}


@router.get("/profile", response_model=ProfileEnvelope, responses=_not_found, summary="Get profile")
def get_profile(
    principal: Principal = Depends(get_current_principal),
    service: AccountService = Depends(get_account_service),
) -> ProfileEnvelope:
    return ProfileEnvelope(user=ProfileResponse.from_profile(service.profile(principal.user_id)))


@router.put("/profile", response_model=ProfileEnvelope, responses=_not_found, summary="Update profile")
def update_profile(
    request_data: UpdateProfileRequest,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    service: AccountService = Depends(get_account_service),
) -> ProfileEnvelope:
    """Only the fields present in the body change."""
    service.update_profile(
        principal.user_id,
        full_name=request_data.full_name,
        phone_number=request_data.phone_number,
        address=request_data.address,
        notification_preference=request_data.notification_preference,
        origin=client_origin(request),
    )
    return ProfileEnvelope(user=ProfileResponse.from_profile(service.profile(principal.user_id)))


@router.put(
    "/change-password",
    response_model=MessageResponse,
    responses={401: {"model": ErrorResponse, "description": "Current password is incorrect"}},
    summary="Change password",
)
def change_password(
    request_data: ChangePasswordRequest,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    service: AccountService = Depends(get_account_service),
) -> MessageResponse:
    service.change_password(
        principal.user_id,
        request_data.old_password,
        request_data.new_password,
        origin=client_origin(request),
    )
    return MessageResponse(message="Password changed successfully")


@router.post(
    "/deactivate", response_model=MessageResponse, responses=_not_found, summary="Deactivate account"
)
def deactivate(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    service: AccountService = Depends(get_account_service),
) -> MessageResponse:
    service.deactivate(principal.user_id, origin=client_origin(request))
    return MessageResponse(message="Account deactivated successfully")


@router.get("/dashboard", response_model=DashboardResponse, responses=_not_found, summary="Dashboard")
def dashboard(
    principal: Principal = Depends(get_current_principal),
    service: AccountService = Depends(get_account_service),
    lifecycle: RequestLifecycleService = Depends(get_lifecycle_service),
) -> DashboardResponse:
    """Profile, the five most recent requests and status counts."""
    summary = service.dashboard(principal.user_id, lifecycle)
    return DashboardResponse(
        profile=ProfileResponse.from_profile(summary.profile),
        recent_requests=[ServiceRequestResponse.from_record(r) for r in summary.recent_requests],
        stats=StatusCountsResponse.from_counts(summary.stats),
    )
