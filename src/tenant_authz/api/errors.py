"""
tenant_authz.api.errors

Mapping of core errors onto HTTP responses.

Responsibilities:
- Keep authentication failures uniform (401, no detail).
- Surface policy write conflicts, missing entities and store outages with stable codes.
"""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.status import (
    HTTP_401_UNAUTHORIZED,
    HTTP_404_NOT_FOUND,
    HTTP_409_CONFLICT,
    HTTP_503_SERVICE_UNAVAILABLE,
)

from tenant_authz.errors import (
    AlreadyExists,
    AuthenticationFailed,
    CredentialNotFound,
    CyclicRoleGraph,
    DomainNotFound,
    RoleNotFound,
    StorageError,
    Unauthenticated,
)
from tenant_authz.observability.logging import get_logger

log = get_logger(__name__)

_STATUS: dict[type[Exception], int] = {
    AuthenticationFailed: HTTP_401_UNAUTHORIZED,
    Unauthenticated: HTTP_401_UNAUTHORIZED,
    CyclicRoleGraph: HTTP_409_CONFLICT,
    AlreadyExists: HTTP_409_CONFLICT,
    DomainNotFound: HTTP_404_NOT_FOUND,
    RoleNotFound: HTTP_404_NOT_FOUND,
    CredentialNotFound: HTTP_404_NOT_FOUND,
    StorageError: HTTP_503_SERVICE_UNAVAILABLE,
}


async def _handle(request: Request, exc: Exception) -> JSONResponse:
    status = _STATUS[type(exc)]
    if isinstance(exc, StorageError):
        log.error("storage_unavailable", error=str(exc))
        detail = "Storage unavailable"
    elif status == HTTP_401_UNAUTHORIZED:
        detail = str(exc)
    elif isinstance(exc, CredentialNotFound):
        detail = "Access key not found"
    else:
        detail = str(exc)
    headers = {"WWW-Authenticate": "Bearer"} if status == HTTP_401_UNAUTHORIZED else None
    return JSONResponse(status_code=status, content={"detail": detail}, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    for exc_type in _STATUS:
        app.add_exception_handler(exc_type, _handle)
