"""
tenant_authz.auth.facade

Authentication façade: the only translator from wire credentials to a `Principal`.

Responsibilities:
- Login: verify the primary credential, issue access + refresh tokens, emit audit events.
- Refresh/logout: delegate to the token service with uniform failure reporting.
- Resolve a bearer token or an access-key pair into a `Principal`.
- Register users with a hashed password (the only place passwords are hashed).
- Collapse every token/credential validation error into `Unauthenticated` while logging
  the precise reason.
"""

from __future__ import annotations

import asyncio

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tenant_authz.auth.access_keys import AccessKeyAuthenticator
from tenant_authz.auth.audit import AuditSink, LoginEvent, LoginOutcome
from tenant_authz.auth.models import (
    AccessToken,
    AuthMethod,
    LoginContext,
    LoginResult,
    Principal,
    RefreshToken,
)
from tenant_authz.auth.passwords import PasswordVerifier
from tenant_authz.auth.tokens import TokenService
from tenant_authz.db.models import EntityStatus
from tenant_authz.db.repositories.directory import DirectoryRepo
from tenant_authz.db.session import transaction_scope
from tenant_authz.errors import (
    AlreadyExists,
    AuthenticationFailed,
    CredentialError,
    DomainNotFound,
    TokenError,
    Unauthenticated,
)
from tenant_authz.observability.logging import get_logger
from tenant_authz.policy.cache import PolicyCache
from tenant_authz.settings import Settings

log = get_logger(__name__)

BEARER_SCHEME = "bearer"


class AuthenticationFacade:
    def __init__(
        self,
        *,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        tokens: TokenService,
        access_keys: AccessKeyAuthenticator,
        cache: PolicyCache,
        passwords: PasswordVerifier,
        audit: AuditSink,
    ) -> None:
        self._sessions = session_factory
        self._timeout = settings.store_timeout_seconds
        self._tokens = tokens
        self._access_keys = access_keys
        self._cache = cache
        self._passwords = passwords
        self._audit = audit

    # Login ----------------------------------------------------------------------

    async def login(
        self,
        domain_code: str,
        username: str,
        password: str,
        context: LoginContext | None = None,
    ) -> LoginResult:
        context = context or LoginContext()
        async with transaction_scope(self._sessions, timeout=self._timeout) as session:
            directory = DirectoryRepo(session)
            domain = await directory.get_domain_by_code(domain_code)
            user = (
                await directory.get_user_by_username(domain.id, username)
                if domain is not None
                else None
            )

        # Always run exactly one password hash check so every failure costs the same.
        reason: str | None = None
        if user is None:
            await asyncio.to_thread(self._passwords.burn, password)
            reason = "unknown_domain" if domain is None else "unknown_subject"
        elif not await asyncio.to_thread(self._passwords.verify, user.password_hash, password):
            reason = "bad_password"
        elif user.status != EntityStatus.enabled:
            reason = "subject_disabled"

        if reason is not None or domain is None or user is None:
            log.info("login_failed", domain=domain_code, username=username, reason=reason)
            self._emit(
                LoginEvent(
                    domain=domain_code,
                    username=username,
                    outcome=LoginOutcome.failure,
                    subject_id=user.id if user is not None else None,
                    reason=reason,
                    client_ip=context.client_ip,
                    user_agent=context.user_agent,
                    request_id=context.request_id,
                )
            )
            raise AuthenticationFailed()

        roles = await self._cache.reachable_roles(domain.id, user.id)
        access = self._tokens.issue_access_token(user.id, domain.id, roles=roles)
        refresh = await self._tokens.issue_refresh_token(user.id, domain.id)
        principal = Principal(
            subject_id=user.id,
            domain_id=domain.id,
            auth_method=AuthMethod.token,
            credential_id=access.token_id,
            issued_roles=roles,
        )
        log.info("login_succeeded", domain=domain_code, subject_id=user.id)
        self._emit(
            LoginEvent(
                domain=domain_code,
                username=username,
                outcome=LoginOutcome.success,
                subject_id=user.id,
                client_ip=context.client_ip,
                user_agent=context.user_agent,
                request_id=context.request_id,
            )
        )
        return LoginResult(access=access, refresh=refresh, principal=principal)

    def _emit(self, event: LoginEvent) -> None:
        try:
            self._audit.emit(event)
        except Exception:
            # Audit delivery is best-effort and must never fail authentication.
            log.exception("login_audit_emit_failed")

    # Provisioning ---------------------------------------------------------------

    async def register_user(
        self,
        domain_id: str,
        username: str,
        password: str,
        *,
        user_id: str | None = None,
        status: EntityStatus = EntityStatus.enabled,
    ) -> str:
        password_hash = await asyncio.to_thread(self._passwords.hash, password)
        async with transaction_scope(self._sessions, timeout=self._timeout) as session:
            directory = DirectoryRepo(session)
            if await directory.get_domain(domain_id) is None:
                raise DomainNotFound(domain_id)
            if await directory.get_user_by_username(domain_id, username) is not None:
                raise AlreadyExists(f"username {username!r} is taken in domain {domain_id}")
            user = await directory.create_user(
                domain_id=domain_id,
                username=username,
                password_hash=password_hash,
                user_id=user_id,
                status=status,
            )
        log.info("user_registered", domain_id=domain_id, subject_id=user.id)
        return user.id

    # Token lifecycle ------------------------------------------------------------

    async def refresh(self, raw_refresh_token: str) -> tuple[AccessToken, RefreshToken]:
        try:
            return await self._tokens.refresh(raw_refresh_token)
        except TokenError as e:
            log.info("refresh_rejected", reason=type(e).__name__)
            raise Unauthenticated() from e

    async def logout(self, raw_refresh_token: str) -> None:
        try:
            token_id = await self._tokens.revoke_raw(raw_refresh_token)
        except TokenError as e:
            log.info("logout_rejected", reason=type(e).__name__)
            raise Unauthenticated() from e
        log.info("logout", token_id=token_id)

    # Request credentials --------------------------------------------------------

    async def authenticate(
        self,
        *,
        authorization: str | None = None,
        access_key_id: str | None = None,
        access_key_secret: str | None = None,
    ) -> Principal:
        try:
            if authorization:
                scheme, _, token = authorization.partition(" ")
                if scheme.lower() != BEARER_SCHEME or not token.strip():
                    log.info("authentication_rejected", reason="unsupported_scheme")
                    raise Unauthenticated()
                return self._tokens.validate_access_token(token.strip())
            if access_key_id and access_key_secret:
                return await self._access_keys.authenticate(access_key_id, access_key_secret)
        except (TokenError, CredentialError) as e:
            log.info("authentication_rejected", reason=type(e).__name__)
            raise Unauthenticated() from e

        log.info("authentication_rejected", reason="missing_credentials")
        raise Unauthenticated()

    async def resolve_roles(self, principal: Principal) -> Principal:
        roles = await self._cache.reachable_roles(principal.domain_id, principal.subject_id)
        return principal.with_roles(roles)


# --- Module Notes -----------------------------------------------------------
# Roles placed in the access token at login are informational; authorization always
# re-derives them from the live policy cache through the enforcement engine.
