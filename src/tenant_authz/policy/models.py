"""
tenant_authz.policy.models

Value types shared by the policy store, cache and engine.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass


@dataclass(frozen=True, slots=True, order=True)
class Permission:
    object: str
    action: str


class ChangeKind(enum.StrEnum):
    domain_created = "DOMAIN_CREATED"
    grant_added = "GRANT_ADDED"
    grant_revoked = "GRANT_REVOKED"
    grants_replaced = "GRANTS_REPLACED"
    inheritance_added = "INHERITANCE_ADDED"
    inheritance_removed = "INHERITANCE_REMOVED"
    members_replaced = "MEMBERS_REPLACED"


@dataclass(frozen=True, slots=True)
class PolicyChange:
    domain_id: str
    kind: ChangeKind
    version: int


@dataclass(frozen=True, slots=True)
class DomainPolicy:
    """A consistent read of one domain's rules (all rows from one transaction)."""

    domain_id: str
    version: int
    grants: tuple[tuple[str, Permission], ...]
    edges: tuple[tuple[str, str], ...]
