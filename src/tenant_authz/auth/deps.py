"""
tenant_authz.auth.deps

FastAPI dependency functions for authentication and authorization.

Responsibilities:
- Convert request credentials (bearer token or access-key headers) into a `Principal`.
- Enforce permissions via a reusable dependency factory, before any handler code runs.
"""

from __future__ import annotations

from fastapi import Depends, Header, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.status import HTTP_401_UNAUTHORIZED, HTTP_403_FORBIDDEN

from tenant_authz.auth.facade import AuthenticationFacade
from tenant_authz.auth.models import Principal
from tenant_authz.errors import Unauthenticated
from tenant_authz.policy.engine import EnforcementEngine

_bearer = HTTPBearer(auto_error=False)


def facade_from_app(request: Request) -> AuthenticationFacade:
    # Built once in `tenant_authz.api.app.create_app` and stored on app.state.
    return request.app.state.facade  # type: ignore[attr-defined]


def engine_from_app(request: Request) -> EnforcementEngine:
    return request.app.state.enforcer  # type: ignore[attr-defined]


async def get_principal(
    creds: HTTPAuthorizationCredentials | None = Depends(_bearer),
    x_access_key_id: str | None = Header(default=None),
    x_access_key_secret: str | None = Header(default=None),
    facade: AuthenticationFacade = Depends(facade_from_app),
) -> Principal:
    authorization = f"{creds.scheme} {creds.credentials}" if creds is not None else None
    try:
        return await facade.authenticate(
            authorization=authorization,
            access_key_id=x_access_key_id,
            access_key_secret=x_access_key_secret,
        )
    except Unauthenticated as e:
        raise HTTPException(
            status_code=HTTP_401_UNAUTHORIZED,
            detail="Unauthenticated",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


def require_permission(object: str | None = None, action: str | None = None):
    """
    Dependency factory. Defaults: object = request path, action = HTTP method.
    The queried domain is the `domain_id` path parameter when the route has one, else the
    `X-Domain-Id` header, else the principal's own domain.
    """

    async def _dep(
        request: Request,
        principal: Principal = Depends(get_principal),
        enforcer: EnforcementEngine = Depends(engine_from_app),
        x_domain_id: str | None = Header(default=None),
    ) -> Principal:
        domain_id = request.path_params.get("domain_id") or x_domain_id or principal.domain_id
        allowed = await enforcer.check(
            principal,
            domain_id,
            object or request.url.path,
            action or request.method,
        )
        if not allowed:
            raise HTTPException(status_code=HTTP_403_FORBIDDEN, detail="Forbidden")
        return principal

    return _dep


# --- Module Notes -----------------------------------------------------------
# Routes attach `Depends(require_permission())` at the decorator level so a denial
# short-circuits with 403 before the endpoint body executes.
