"""
API v1 package.

Contains versioned API routes for the service request tracker.
"""

from fastapi import APIRouter

from csrms.api.v1 import auth, notifications, requests, users

router = APIRouter()
router.include_router(auth.router)
router.include_router(requests.router)
router.include_router(users.router)
router.include_router(notifications.router)

__all__ = ["router"]
