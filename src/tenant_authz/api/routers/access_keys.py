"""
tenant_authz.api.routers.access_keys

Access key management for the authenticated caller.

Responsibilities:
- Create keys bound to the caller's domain; the secret appears in this response only.
- List the caller's keys and revoke them.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel, Field
from starlette.status import HTTP_201_CREATED, HTTP_204_NO_CONTENT, HTTP_404_NOT_FOUND

from tenant_authz.api.deps import access_keys_from_app
from tenant_authz.auth.access_keys import AccessKeyAuthenticator
from tenant_authz.auth.deps import get_principal, require_permission
from tenant_authz.auth.models import AccessKey, Principal

router = APIRouter(prefix="/v1/access-keys", tags=["access-keys"])


class AccessKeyCreateRequest(BaseModel):
    ttl_days: int | None = Field(default=None, ge=1, le=3650)
    description: str | None = Field(default=None, max_length=255)


class AccessKeyResponse(BaseModel):
    id: str
    owner_subject_id: str
    domain_id: str
    status: str
    created_at: datetime
    expires_at: datetime | None
    description: str | None


class AccessKeyCreatedResponse(AccessKeyResponse):
    secret: str


def _view(key: AccessKey) -> dict:
    return {
        "id": key.id,
        "owner_subject_id": key.owner_subject_id,
        "domain_id": key.domain_id,
        "status": key.status,
        "created_at": key.created_at,
        "expires_at": key.expires_at,
        "description": key.description,
    }


@router.post(
    "",
    response_model=AccessKeyCreatedResponse,
    status_code=HTTP_201_CREATED,
    dependencies=[Depends(require_permission())],
)
async def create_access_key(
    body: AccessKeyCreateRequest,
    principal: Principal = Depends(get_principal),
    access_keys: AccessKeyAuthenticator = Depends(access_keys_from_app),
) -> AccessKeyCreatedResponse:
    ttl = timedelta(days=body.ttl_days) if body.ttl_days is not None else None
    key, secret = await access_keys.create(
        principal.subject_id, principal.domain_id, ttl, description=body.description
    )
    return AccessKeyCreatedResponse(**_view(key), secret=secret)


@router.get(
    "",
    response_model=list[AccessKeyResponse],
    dependencies=[Depends(require_permission())],
)
async def list_access_keys(
    principal: Principal = Depends(get_principal),
    access_keys: AccessKeyAuthenticator = Depends(access_keys_from_app),
) -> list[AccessKeyResponse]:
    keys = await access_keys.list_for_owner(principal.subject_id)
    return [AccessKeyResponse(**_view(k)) for k in keys if k.domain_id == principal.domain_id]


@router.delete(
    "/{key_id}",
    status_code=HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_permission())],
)
async def revoke_access_key(
    key_id: str,
    principal: Principal = Depends(get_principal),
    access_keys: AccessKeyAuthenticator = Depends(access_keys_from_app),
) -> Response:
    key = await access_keys.get(key_id)
    if key.domain_id != principal.domain_id:
        # Keys of other domains are reported exactly like unknown ones.
        raise HTTPException(status_code=HTTP_404_NOT_FOUND, detail="Access key not found")
    await access_keys.revoke(key_id)
    return Response(status_code=HTTP_204_NO_CONTENT)
