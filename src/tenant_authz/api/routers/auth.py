"""
tenant_authz.api.routers.auth

Session endpoints: login, refresh, logout and caller introspection.

Responsibilities:
- Exchange primary credentials for an access/refresh token pair.
- Rotate and revoke refresh tokens.
- Report the authenticated caller's identity and effective roles.
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Request, Response
from pydantic import BaseModel, Field
from starlette.status import HTTP_204_NO_CONTENT

from tenant_authz.auth.deps import facade_from_app, get_principal
from tenant_authz.auth.facade import AuthenticationFacade
from tenant_authz.auth.models import AccessToken, LoginContext, Principal, RefreshToken

router = APIRouter(prefix="/v1/auth", tags=["auth"])


class LoginRequest(BaseModel):
    domain: str = Field(min_length=1, max_length=64)
    username: str = Field(min_length=1, max_length=128)
    password: str = Field(min_length=1, max_length=1024)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(min_length=1)


class TokenPairResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_at: datetime
    refresh_expires_at: datetime


class MeResponse(BaseModel):
    subject_id: str
    domain_id: str
    auth_method: str
    roles: list[str]


def _pair(access: AccessToken, refresh: RefreshToken) -> TokenPairResponse:
    return TokenPairResponse(
        access_token=access.raw,
        refresh_token=refresh.raw,
        expires_at=access.expires_at,
        refresh_expires_at=refresh.expires_at,
    )


@router.post("/login", response_model=TokenPairResponse)
async def login(
    request: Request,
    body: LoginRequest,
    facade: AuthenticationFacade = Depends(facade_from_app),
) -> TokenPairResponse:
    context = LoginContext(
        client_ip=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
        request_id=getattr(request.state, "request_id", None),
    )
    result = await facade.login(body.domain, body.username, body.password, context)
    return _pair(result.access, result.refresh)


@router.post("/refresh", response_model=TokenPairResponse)
async def refresh(
    body: RefreshRequest,
    facade: AuthenticationFacade = Depends(facade_from_app),
) -> TokenPairResponse:
    access, refresh_token = await facade.refresh(body.refresh_token)
    return _pair(access, refresh_token)


@router.post("/logout", status_code=HTTP_204_NO_CONTENT)
async def logout(
    body: RefreshRequest,
    facade: AuthenticationFacade = Depends(facade_from_app),
) -> Response:
    await facade.logout(body.refresh_token)
    return Response(status_code=HTTP_204_NO_CONTENT)


@router.get("/me", response_model=MeResponse)
async def me(
    principal: Principal = Depends(get_principal),
    facade: AuthenticationFacade = Depends(facade_from_app),
) -> MeResponse:
    resolved = await facade.resolve_roles(principal)
    return MeResponse(
        subject_id=resolved.subject_id,
        domain_id=resolved.domain_id,
        auth_method=str(resolved.auth_method),
        roles=sorted(resolved.issued_roles or ()),
    )
