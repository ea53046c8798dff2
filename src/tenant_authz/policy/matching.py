"""
tenant_authz.policy.matching

Permission matching: decides whether a granted (object, action) covers a requested one.

The algorithm is fixed by `WildcardMode` (configured via `Settings.wildcard_mode`):

- ``exact``: grant.object == object and grant.action == action.
- ``action``: as ``exact``, except a grant action of ``*`` matches any action.
- ``pattern``: ``action`` rules, plus object patterns on the grant side:
    * ``*`` on its own matches every object;
    * a final ``/*`` segment matches everything strictly below the prefix, including the
      prefix with a trailing slash (``/a/*`` matches ``/a/``, ``/a/b``, ``/a/b/c``;
      it does not match ``/a`` or ``/ab``);
    * a ``:name`` segment matches exactly one non-empty segment
      (``/role/:id`` matches ``/role/7``, not ``/role/`` or ``/role/7/x``).
  A ``*`` anywhere other than the final segment is compared literally.

Only the grant side is ever interpreted as a pattern; requested objects are literal.
Grants are allow-only, so there is no precedence between overlapping rules: the request
is allowed as soon as any grant matches.
"""

from __future__ import annotations

import enum
from collections.abc import Iterable

from tenant_authz.policy.models import Permission

WILDCARD = "*"


class WildcardMode(enum.StrEnum):
    exact = "exact"
    action = "action"
    pattern = "pattern"


class PermissionMatcher:
    def __init__(self, mode: WildcardMode | str = WildcardMode.pattern) -> None:
        self.mode = WildcardMode(mode)

    def allows(self, permissions: Iterable[Permission], object: str, action: str) -> bool:
        if not isinstance(permissions, (set, frozenset)):
            permissions = frozenset(permissions)
        # Fast path: an exact hit needs no pattern evaluation in any mode.
        if Permission(object, action) in permissions:
            return True
        if self.mode is WildcardMode.exact:
            return False
        return any(self.matches(p, object, action) for p in permissions)

    def matches(self, grant: Permission, object: str, action: str) -> bool:
        return self._action_matches(grant.action, action) and self._object_matches(
            grant.object, object
        )

    def _action_matches(self, granted: str, requested: str) -> bool:
        if granted == requested:
            return True
        return self.mode is not WildcardMode.exact and granted == WILDCARD

    def _object_matches(self, granted: str, requested: str) -> bool:
        if granted == requested:
            return True
        if self.mode is not WildcardMode.pattern:
            return False
        if granted == WILDCARD:
            return True

        pattern = granted.split("/")
        target = requested.split("/")
        if pattern[-1] == WILDCARD:
            prefix = pattern[:-1]
            return len(target) > len(prefix) and _segments_match(prefix, target[: len(prefix)])
        return len(pattern) == len(target) and _segments_match(pattern, target)


def _segments_match(pattern: list[str], target: list[str]) -> bool:
    for want, got in zip(pattern, target, strict=True):
        if want == got:
            continue
        if len(want) > 1 and want.startswith(":") and got:
            continue
        return False
    return True
