"""
Domain error to HTTP response mapping.

Every domain error reaches the client as ``{"detail": <message>}`` with
one status code; there are no partial-success responses.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from csrms.domain.exceptions import (
    Conflict,
    CsrmsError,
    DependencyFailure,
    Forbidden,
    InvalidCredential,
    InvalidTransition,
    NotFound,
    Unauthorized,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Ordered: first matching class wins, so subclasses stay ahead of bases.
STATUS_BY_ERROR: tuple[tuple[type[CsrmsError], int], ...] = (
    (ValidationError, 422),
    (NotFound, 404),
    (Conflict, 409),
    (InvalidTransition, 400),
    (InvalidCredential, 401),
    (Unauthorized, 401),
    (Forbidden, 403),
    (DependencyFailure, 503),
)


def status_for(error: CsrmsError) -> int:
    for error_cls, status_code in STATUS_BY_ERROR:
        if isinstance(error, error_cls):
            return status_code
    return 500


async def handle_domain_error(request: Request, exc: CsrmsError) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthorized) else None
    return JSONResponse(status_code=status_code, content={"detail": str(exc)}, headers=headers)


def install_error_handlers(app: FastAPI) -> None:
    """Register the domain error handler on ``app``."""
    app.add_exception_handler(CsrmsError, handle_domain_error)
