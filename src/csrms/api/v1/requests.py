"""
API v1 service request routes.

Citizens submit requests; administrators move them through the lifecycle
(Pending -> In Progress -> Resolved -> Closed) and close them.
"""

from fastapi import APIRouter, Depends, Query, Request, status

from csrms.api.dependencies import (
    client_origin,
    get_current_principal,
    get_lifecycle_service,
    require_administrator,
    require_citizen,
)
from csrms.api.models import (
    CreateServiceRequest,
    ErrorResponse,
    ServiceRequestEnvelope,
    ServiceRequestList,
    ServiceRequestResponse,
    StatusCountsResponse,
    StatusUpdateResponse,
    UpdateStatusRequest,
)
from csrms.domain.lifecycle import RequestLifecycleService
from csrms.domain.models import Principal, RequestQuery
from csrms.domain.ports import Category, Priority, RequestStatus, Role

router = APIRouter(prefix="/requests", tags=["requests"])


@router.post(
    "",
    response_model=ServiceRequestEnvelope,
    status_code=status.HTTP_201_CREATED,
    responses={403: {"model": ErrorResponse, "description": "Citizen profile not found"}},
    summary="Submit a service request",
)
def create_request(
    request_data: CreateServiceRequest,
    request: Request,
    principal: Principal = Depends(require_citizen),
    service: RequestLifecycleService = Depends(get_lifecycle_service),
) -> ServiceRequestEnvelope:
    """Create a request at Pending for the calling citizen."""
    created = service.create(
        citizen_user_id=principal.user_id,
        title=request_data.title,
        description=request_data.description,
        category=request_data.category,
        location=request_data.location,
        image_path=request_data.image_path,
        priority=request_data.priority,
        origin=client_origin(request),
    )
    return ServiceRequestEnvelope(request=ServiceRequestResponse.from_record(created))


@router.get("", response_model=ServiceRequestList, summary="List and filter service requests")
def list_requests(
    status_filter: RequestStatus | None = Query(default=None, alias="status"),
    category: Category | None = None,
    priority: Priority | None = None,
    sort: str = "submission_date",
    order: str = "desc",
    mine: bool = False,
    principal: Principal = Depends(get_current_principal),
    service: RequestLifecycleService = Depends(get_lifecycle_service),
) -> ServiceRequestList:
    """
    Filter by status, category and priority; sort by submission_date,
    priority or status. ``mine=true`` restricts citizens to their own
    requests. At most 100 rows are returned.
    """
    owner = principal.user_id if mine and principal.role is Role.CITIZEN else None
    rows = service.list_requests(
        RequestQuery(
            status=status_filter,
            category=category,
            priority=priority,
            sort=sort,
            order=order,
            owner_user_id=owner,
        )
    )
    return ServiceRequestList(requests=[ServiceRequestResponse.from_record(r) for r in rows])


@router.get("/stats", response_model=StatusCountsResponse, summary="Status counts for the caller")
def request_stats(
    principal: Principal = Depends(get_current_principal),
    service: RequestLifecycleService = Depends(get_lifecycle_service),
) -> StatusCountsResponse:
    return StatusCountsResponse.from_counts(service.status_counts(principal.user_id))


@router.get("/mine", response_model=ServiceRequestList, summary="The caller's own requests")
def my_requests(
    principal: Principal = Depends(get_current_principal),
    service: RequestLifecycleService = Depends(get_lifecycle_service),
) -> ServiceRequestList:
    rows = service.my_requests(principal.user_id)
    return ServiceRequestList(requests=[ServiceRequestResponse.from_record(r) for r in rows])


@router.patch(
    "/{request_id}/status",
    response_model=StatusUpdateResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Transition not allowed"},
        404: {"model": ErrorResponse, "description": "Request not found"},
        409: {"model": ErrorResponse, "description": "Request already closed"},
    },
    summary="Move a request to a new status",
    description="The citizen is emailed after the change is committed; "
    "a failed email does not fail the update.",
)
def update_status(
    request_id: str,
    request_data: UpdateStatusRequest,
    request: Request,
    principal: Principal = Depends(require_administrator),
    service: RequestLifecycleService = Depends(get_lifecycle_service),
) -> StatusUpdateResponse:
    change = service.update_status(
        request_id,
        request_data.status,
        note=request_data.note,
        actor_id=principal.user_id,
        origin=client_origin(request),
    )
    return StatusUpdateResponse(
        success=True,
        request_id=request_id,
        status=change.request.status,
        notified=change.notified,
    )


@router.post(
    "/{request_id}/close",
    response_model=ServiceRequestEnvelope,
    responses={
        404: {"model": ErrorResponse, "description": "Request not found"},
        409: {"model": ErrorResponse, "description": "Request already closed"},
    },
    summary="Close a request",
)
def close_request(
    request_id: str,
    request: Request,
    principal: Principal = Depends(require_administrator),
    service: RequestLifecycleService = Depends(get_lifecycle_service),
) -> ServiceRequestEnvelope:
    closed = service.close(request_id, actor_id=principal.user_id, origin=client_origin(request))
    return ServiceRequestEnvelope(request=ServiceRequestResponse.from_record(closed))
