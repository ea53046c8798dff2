"""
tenant_authz.api.routers.directory

Role and user provisioning within a domain.

Responsibilities:
- Create roles (the targets of grants and inheritance edges).
- Register users with a password; passwords are hashed by the authentication façade.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from starlette.status import HTTP_201_CREATED

from tenant_authz.api.deps import policy_store_from_app
from tenant_authz.auth.deps import facade_from_app, require_permission
from tenant_authz.auth.facade import AuthenticationFacade
from tenant_authz.policy.store import PolicyStore

router = APIRouter(prefix="/v1/domains/{domain_id}", tags=["directory"])


class RoleCreateRequest(BaseModel):
    code: str = Field(min_length=1, max_length=64)


class RoleResponse(BaseModel):
    id: str
    domain_id: str
    code: str


class UserCreateRequest(BaseModel):
    username: str = Field(min_length=1, max_length=128)
    password: str = Field(min_length=8, max_length=1024)


class UserResponse(BaseModel):
    id: str
    domain_id: str
    username: str


@router.post(
    "/roles",
    response_model=RoleResponse,
    status_code=HTTP_201_CREATED,
    dependencies=[Depends(require_permission())],
)
async def create_role(
    domain_id: str,
    body: RoleCreateRequest,
    store: PolicyStore = Depends(policy_store_from_app),
) -> RoleResponse:
    role = await store.create_role(domain_id, body.code)
    return RoleResponse(id=role.id, domain_id=role.domain_id, code=role.code)


@router.post(
    "/users",
    response_model=UserResponse,
    status_code=HTTP_201_CREATED,
    dependencies=[Depends(require_permission())],
)
async def create_user(
    domain_id: str,
    body: UserCreateRequest,
    facade: AuthenticationFacade = Depends(facade_from_app),
) -> UserResponse:
    user_id = await facade.register_user(domain_id, body.username, body.password)
    return UserResponse(id=user_id, domain_id=domain_id, username=body.username)
