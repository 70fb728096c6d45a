"""
API v1 notification routes.

The caller's in-app inbox. Notifications of other users answer 404.
"""

from fastapi import APIRouter, Depends, Query

from csrms.api.dependencies import get_current_principal, get_inbox
from csrms.api.models import (
    ErrorResponse,
    NotificationEnvelope,
    NotificationList,
    NotificationResponse,
    Pagination,
    UnreadCountResponse,
    UpdatedCountResponse,
)
from csrms.domain.models import Principal
from csrms.domain.notifications import NotificationInbox

router = APIRouter(prefix="/notifications", tags=["notifications"])

_not_found = {404: {"model": ErrorResponse, "description": "Notification not found"}}


@router.get("", response_model=NotificationList, summary="List notifications")
def list_notifications(
    unread_only: bool = Query(default=False, alias="unreadOnly"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    principal: Principal = Depends(get_current_principal),
    inbox: NotificationInbox = Depends(get_inbox),
) -> NotificationList:
    result = inbox.list_notifications(principal.user_id, unread_only=unread_only, page=page, limit=limit)
    return NotificationList(
        notifications=[NotificationResponse.from_record(n) for n in result.notifications],
        pagination=Pagination(
            total=result.total,
            page=result.page,
            limit=result.limit,
            total_pages=result.total_pages,
        ),
    )


@router.get("/unread-count", response_model=UnreadCountResponse, summary="Unread notification count")
def unread_count(
    principal: Principal = Depends(get_current_principal),
    inbox: NotificationInbox = Depends(get_inbox),
) -> UnreadCountResponse:
    return UnreadCountResponse(unread_count=inbox.unread_count(principal.user_id))


@router.patch(
    "/{notification_id}/read",
    response_model=NotificationEnvelope,
    responses=_not_found,
    summary="Mark a notification as read",
)
def mark_read(
    notification_id: str,
    principal: Principal = Depends(get_current_principal),
    inbox: NotificationInbox = Depends(get_inbox),
) -> NotificationEnvelope:
    notification = inbox.mark_read(principal.user_id, notification_id)
    return NotificationEnvelope(
        message="Notification marked as read",
        notification=NotificationResponse.from_record(notification),
    )


@router.post("/mark-all-read", response_model=UpdatedCountResponse, summary="Mark all as read")
def mark_all_read(
    principal: Principal = Depends(get_current_principal),
    inbox: NotificationInbox = Depends(get_inbox),
) -> UpdatedCountResponse:
    return UpdatedCountResponse(
        message="All notifications marked as read",
        updated_count=inbox.mark_all_read(principal.user_id),
    )


@router.delete(
    "/{notification_id}",
    response_model=NotificationEnvelope,
    responses=_not_found,
    summary="Delete a notification",
)
def delete_notification(
    notification_id: str,
    principal: Principal = Depends(get_current_principal),
    inbox: NotificationInbox = Depends(get_inbox),
) -> NotificationEnvelope:
    notification = inbox.delete(principal.user_id, notification_id)
    return NotificationEnvelope(
        message="Notification deleted",
        notification=NotificationResponse.from_record(notification),
    )
