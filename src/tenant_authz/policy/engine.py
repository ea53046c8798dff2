"""
tenant_authz.policy.engine

Enforcement engine: the single authorization decision point.

Responsibilities:
- Deny any query whose domain differs from the principal's domain.
- Evaluate the principal's effective permissions (from the policy cache) against the
  requested (object, action) using the configured matching policy.
- Fail closed: storage trouble or absent grants mean deny, never allow.
"""

from __future__ import annotations

from tenant_authz.auth.models import Principal
from tenant_authz.errors import StorageError
from tenant_authz.observability.logging import get_logger
from tenant_authz.policy.cache import PolicyCache
from tenant_authz.policy.matching import PermissionMatcher

log = get_logger(__name__)


class EnforcementEngine:
    def __init__(self, cache: PolicyCache, matcher: PermissionMatcher) -> None:
        self._cache = cache
        self._matcher = matcher

    async def check(self, principal: Principal, domain_id: str, object: str, action: str) -> bool:
        if principal.domain_id != domain_id:
            log.warning(
                "authz_cross_domain_denied",
                subject_id=principal.subject_id,
                principal_domain=principal.domain_id,
                domain_id=domain_id,
            )
            return False

        try:
            permissions = await self._cache.resolve_effective_permissions(
                domain_id, principal.subject_id
            )
        except StorageError as e:
            log.error(
                "authz_store_unavailable_denied",
                subject_id=principal.subject_id,
                domain_id=domain_id,
                error=str(e),
            )
            return False

        allowed = self._matcher.allows(permissions, object, action)
        log.debug(
            "authz_decision",
            subject_id=principal.subject_id,
            domain_id=domain_id,
            object=object,
            action=action,
            allowed=allowed,
        )
        return allowed


# --- Module Notes -----------------------------------------------------------
# `check` is side-effect free apart from warming the cache, so a request abandoned while
# its check is in flight leaves nothing behind.
