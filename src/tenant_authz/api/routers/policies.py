"""
tenant_authz.api.routers.policies

Policy administration and decision endpoints.

Responsibilities:
- Grant/revoke (object, action) permissions to roles within a domain.
- Add/remove inheritance edges (subject or role -> parent role).
- Replace a role's grant set or member set wholesale.
- Answer "may I?" questions for the calling principal.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from tenant_authz.api.deps import policy_store_from_app
from tenant_authz.auth.deps import engine_from_app, get_principal, require_permission
from tenant_authz.auth.models import Principal
from tenant_authz.policy.engine import EnforcementEngine
from tenant_authz.policy.models import Permission
from tenant_authz.policy.store import PolicyStore

router = APIRouter(prefix="/v1", tags=["policy"])


class PermissionBody(BaseModel):
    object: str = Field(min_length=1, max_length=512)
    action: str = Field(min_length=1, max_length=64)


class GrantBody(PermissionBody):
    role_id: str = Field(min_length=1, max_length=64)


class InheritanceBody(BaseModel):
    child_id: str = Field(min_length=1, max_length=64)
    parent_role_id: str = Field(min_length=1, max_length=64)


class RoleGrantsBody(BaseModel):
    permissions: list[PermissionBody] = Field(default_factory=list)


class RoleMembersBody(BaseModel):
    subject_ids: list[str] = Field(default_factory=list)


class ChangeResponse(BaseModel):
    changed: bool


class CheckRequest(BaseModel):
    domain_id: str | None = None
    object: str = Field(min_length=1, max_length=512)
    action: str = Field(min_length=1, max_length=64)


class CheckResponse(BaseModel):
    allowed: bool


@router.post(
    "/domains/{domain_id}/grants",
    response_model=ChangeResponse,
    dependencies=[Depends(require_permission())],
)
async def add_grant(
    domain_id: str,
    body: GrantBody,
    store: PolicyStore = Depends(policy_store_from_app),
) -> ChangeResponse:
    changed = await store.grant(domain_id, body.role_id, body.object, body.action)
    return ChangeResponse(changed=changed)


@router.delete(
    "/domains/{domain_id}/grants",
    response_model=ChangeResponse,
    dependencies=[Depends(require_permission())],
)
async def revoke_grant(
    domain_id: str,
    body: GrantBody,
    store: PolicyStore = Depends(policy_store_from_app),
) -> ChangeResponse:
    changed = await store.revoke_grant(domain_id, body.role_id, body.object, body.action)
    return ChangeResponse(changed=changed)


@router.post(
    "/domains/{domain_id}/inheritance",
    response_model=ChangeResponse,
    dependencies=[Depends(require_permission())],
)
async def add_inheritance(
    domain_id: str,
    body: InheritanceBody,
    store: PolicyStore = Depends(policy_store_from_app),
) -> ChangeResponse:
    changed = await store.add_inheritance(domain_id, body.child_id, body.parent_role_id)
    return ChangeResponse(changed=changed)


@router.delete(
    "/domains/{domain_id}/inheritance",
    response_model=ChangeResponse,
    dependencies=[Depends(require_permission())],
)
async def remove_inheritance(
    domain_id: str,
    body: InheritanceBody,
    store: PolicyStore = Depends(policy_store_from_app),
) -> ChangeResponse:
    changed = await store.remove_inheritance(domain_id, body.child_id, body.parent_role_id)
    return ChangeResponse(changed=changed)


@router.put(
    "/domains/{domain_id}/roles/{role_id}/grants",
    response_model=ChangeResponse,
    dependencies=[Depends(require_permission())],
)
async def replace_role_grants(
    domain_id: str,
    role_id: str,
    body: RoleGrantsBody,
    store: PolicyStore = Depends(policy_store_from_app),
) -> ChangeResponse:
    permissions = [Permission(p.object, p.action) for p in body.permissions]
    changed = await store.set_role_grants(domain_id, role_id, permissions)
    return ChangeResponse(changed=changed)


@router.put(
    "/domains/{domain_id}/roles/{role_id}/members",
    response_model=ChangeResponse,
    dependencies=[Depends(require_permission())],
)
async def replace_role_members(
    domain_id: str,
    role_id: str,
    body: RoleMembersBody,
    store: PolicyStore = Depends(policy_store_from_app),
) -> ChangeResponse:
    changed = await store.set_role_members(domain_id, role_id, body.subject_ids)
    return ChangeResponse(changed=changed)


@router.post("/authz/check", response_model=CheckResponse)
async def check(
    body: CheckRequest,
    principal: Principal = Depends(get_principal),
    enforcer: EnforcementEngine = Depends(engine_from_app),
) -> CheckResponse:
    # Answers for the caller only; asking about another domain is simply a deny.
    allowed = await enforcer.check(
        principal, body.domain_id or principal.domain_id, body.object, body.action
    )
    return CheckResponse(allowed=allowed)


# --- Module Notes -----------------------------------------------------------
# Admin routes are authorized like every other route: the caller needs a grant covering
# the request path and HTTP method in the path's domain.
