"""
tenant_authz.errors

Error taxonomy for the identity, credential and permission-decision core.

Responsibilities:
- Give every failure a distinct type so callers can log the precise reason.
- Group them so the façade can collapse validation errors into `Unauthenticated`.
"""

from __future__ import annotations


class AuthzError(Exception):
    """Base class for every error raised by this package."""


# Tokens -----------------------------------------------------------------------


class TokenError(AuthzError):
    pass


class TokenExpired(TokenError):
    pass


class TokenInvalid(TokenError):
    # Malformed, bad signature, wrong issuer/audience, or wrong token kind.
    pass


class TokenRevoked(TokenError):
    pass


# Access keys ------------------------------------------------------------------


class CredentialError(AuthzError):
    pass


class CredentialNotFound(CredentialError):
    pass


class CredentialExpired(CredentialError):
    pass


class CredentialMismatch(CredentialError):
    pass


class CredentialRevoked(CredentialError):
    pass


# Policy -----------------------------------------------------------------------


class PolicyError(AuthzError):
    pass


class CyclicRoleGraph(PolicyError):
    def __init__(self, domain_id: str, child_id: str, parent_role_id: str) -> None:
        super().__init__(
            f"inheritance {child_id} -> {parent_role_id} would create a cycle in domain {domain_id}"
        )
        self.domain_id = domain_id
        self.child_id = child_id
        self.parent_role_id = parent_role_id


class DomainNotFound(PolicyError):
    pass


class RoleNotFound(PolicyError):
    pass


class AlreadyExists(PolicyError):
    """A domain code, role code or username is already taken."""


# Infrastructure / boundary ----------------------------------------------------


class StorageError(AuthzError):
    """Credential or policy store unavailable, failed, or timed out."""


class ConfigError(AuthzError):
    """Missing or unusable configuration; fatal at startup."""


class AuthenticationFailed(AuthzError):
    """Login failed; the message never says which check failed."""

    def __init__(self) -> None:
        super().__init__("Invalid credentials")


class Unauthenticated(AuthzError):
    """Uniform outcome for any rejected request credential at the façade boundary."""

    def __init__(self) -> None:
        super().__init__("Unauthenticated")


# --- Module Notes -----------------------------------------------------------
# `AuthenticationFailed` and `Unauthenticated` carry no detail on purpose; the original
# error is chained via `raise ... from` and logged where it is caught.
