"""
tenant_authz.api.routers.dev_bootstrap

Dev/test-only provisioning of a fresh domain with an administrator.

Responsibilities:
- Create a domain, an `admin` role holding the (`*`, `*`) grant, and an admin user
  inheriting it, so a local instance can be driven over HTTP from the first request.
- Stay invisible in prod (404).
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from starlette.status import HTTP_201_CREATED, HTTP_404_NOT_FOUND

from tenant_authz.api.deps import policy_store_from_app, settings_dep
from tenant_authz.auth.deps import facade_from_app
from tenant_authz.auth.facade import AuthenticationFacade
from tenant_authz.observability.logging import get_logger
from tenant_authz.policy.matching import WILDCARD
from tenant_authz.policy.store import PolicyStore
from tenant_authz.settings import Settings

log = get_logger(__name__)

router = APIRouter(prefix="/v1/dev", tags=["dev"])

ADMIN_ROLE_CODE = "admin"


class BootstrapRequest(BaseModel):
    domain_code: str = Field(min_length=1, max_length=64)
    display_name: str = Field(default="", max_length=255)
    admin_username: str = Field(default="admin", min_length=1, max_length=128)
    admin_password: str = Field(min_length=8, max_length=1024)


class BootstrapResponse(BaseModel):
    domain_id: str
    admin_role_id: str
    admin_subject_id: str


@router.post("/bootstrap", response_model=BootstrapResponse, status_code=HTTP_201_CREATED)
async def bootstrap_domain(
    body: BootstrapRequest,
    settings: Settings = Depends(settings_dep),
    store: PolicyStore = Depends(policy_store_from_app),
    facade: AuthenticationFacade = Depends(facade_from_app),
) -> BootstrapResponse:
    if settings.env == "prod":
        raise HTTPException(status_code=HTTP_404_NOT_FOUND, detail="Not found")

    domain = await store.create_domain(body.domain_code, body.display_name or body.domain_code)
    role = await store.create_role(domain.id, ADMIN_ROLE_CODE)
    await store.grant(domain.id, role.id, WILDCARD, WILDCARD)
    subject_id = await facade.register_user(domain.id, body.admin_username, body.admin_password)
    await store.add_inheritance(domain.id, subject_id, role.id)
    log.info("dev_domain_bootstrapped", domain_id=domain.id, subject_id=subject_id)
    return BootstrapResponse(domain_id=domain.id, admin_role_id=role.id, admin_subject_id=subject_id)
