"""
tenant_authz.auth.models

Auth domain models.

Responsibilities:
- Define the resolved caller identity (`Principal`) consumed by the enforcement engine.
- Define the credential views handed back to callers (tokens, access keys).
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, replace
from datetime import datetime


class AuthMethod(enum.StrEnum):
    token = "TOKEN"
    access_key = "ACCESS_KEY"


@dataclass(frozen=True, slots=True)
class Principal:
    """
    Authenticated caller identity for one request. Never persisted.

    `issued_roles` is None until resolved; authorization never trusts it, the
    enforcement engine always consults the live policy cache.
    """

    subject_id: str
    domain_id: str
    auth_method: AuthMethod
    credential_id: str | None = None
    issued_roles: frozenset[str] | None = None

    def with_roles(self, roles: frozenset[str]) -> Principal:
        return replace(self, issued_roles=roles)


@dataclass(frozen=True, slots=True)
class AccessToken:
    raw: str
    token_id: str
    subject_id: str
    domain_id: str
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True, slots=True)
class RefreshToken:
    raw: str
    id: str
    subject_id: str
    domain_id: str
    issued_at: datetime
    expires_at: datetime
    revoked: bool = False


@dataclass(frozen=True, slots=True)
class AccessKey:
    # No secret field: the plaintext is returned once by `create` only.
    id: str
    owner_subject_id: str
    domain_id: str
    status: str
    created_at: datetime
    expires_at: datetime | None
    description: str | None = None


@dataclass(frozen=True, slots=True)
class LoginContext:
    client_ip: str | None = None
    user_agent: str | None = None
    request_id: str | None = None


@dataclass(frozen=True, slots=True)
class LoginResult:
    access: AccessToken
    refresh: RefreshToken
    principal: Principal


# --- Module Notes -----------------------------------------------------------
# Keep these models free of persistence types; repositories map ORM rows into them.
