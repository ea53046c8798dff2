"""
tenant_authz.auth.tokens

Token service: access/refresh token lifecycle.

Responsibilities:
- Issue stateless access tokens and persisted refresh tokens.
- Validate access tokens without touching the store (signature + expiry only).
- Rotate refresh tokens exactly once per generation, and revoke them.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Callable, Iterable
from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tenant_authz.auth.jwt import JwtConfig, decode_and_validate, issue_token
from tenant_authz.auth.models import AccessToken, AuthMethod, Principal, RefreshToken
from tenant_authz.db.repositories.credentials import RefreshTokenRepo
from tenant_authz.db.session import transaction_scope
from tenant_authz.errors import ConfigError, TokenExpired, TokenInvalid, TokenRevoked
from tenant_authz.observability.logging import get_logger
from tenant_authz.settings import Settings

log = get_logger(__name__)

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


def _rotation_done(token_id: str, task: asyncio.Task[object]) -> None:
    # Retrieves the outcome even when the caller was cancelled and nobody awaits it.
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        log.info("refresh_rotation_failed", token_id=token_id, reason=type(error).__name__)


class TokenService:
    def __init__(
        self,
        *,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Clock = _utc_now,
    ) -> None:
        self._cfg = JwtConfig.from_settings(settings)
        if not self._cfg.secret:
            raise ConfigError("signing key unavailable")
        self._access_ttl = timedelta(seconds=settings.access_token_ttl_seconds)
        self._refresh_ttl = timedelta(seconds=settings.refresh_token_ttl_seconds)
        self._timeout = settings.store_timeout_seconds
        self._sessions = session_factory
        self._clock = clock

    # Issue ----------------------------------------------------------------------

    def issue_access_token(
        self, subject_id: str, domain_id: str, *, roles: Iterable[str] | None = None
    ) -> AccessToken:
        signed = issue_token(
            cfg=self._cfg,
            kind="access",
            subject=subject_id,
            domain=domain_id,
            ttl=self._access_ttl,
            roles=sorted(roles) if roles is not None else None,
            now=self._clock(),
        )
        return AccessToken(
            raw=signed.raw,
            token_id=signed.jti,
            subject_id=subject_id,
            domain_id=domain_id,
            issued_at=signed.issued_at,
            expires_at=signed.expires_at,
        )

    async def issue_refresh_token(self, subject_id: str, domain_id: str) -> RefreshToken:
        async with transaction_scope(self._sessions, timeout=self._timeout) as session:
            token = await self._persist_refresh(session, subject_id, domain_id)
        log.info("refresh_token_issued", subject_id=subject_id, domain_id=domain_id, token_id=token.id)
        return token

    async def _persist_refresh(
        self,
        session: AsyncSession,
        subject_id: str,
        domain_id: str,
        *,
        token_id: str | None = None,
    ) -> RefreshToken:
        signed = issue_token(
            cfg=self._cfg,
            kind="refresh",
            subject=subject_id,
            domain=domain_id,
            ttl=self._refresh_ttl,
            jti=token_id,
            now=self._clock(),
        )
        await RefreshTokenRepo(session).create(
            token_id=signed.jti,
            subject_id=subject_id,
            domain_id=domain_id,
            issued_at=signed.issued_at,
            expires_at=signed.expires_at,
        )
        return RefreshToken(
            raw=signed.raw,
            id=signed.jti,
            subject_id=subject_id,
            domain_id=domain_id,
            issued_at=signed.issued_at,
            expires_at=signed.expires_at,
        )

    # Validate -------------------------------------------------------------------

    def validate_access_token(self, raw: str) -> Principal:
        # Pure computation: no store lookup, safe to call from any number of workers.
        claims = decode_and_validate(cfg=self._cfg, token=raw, kind="access")
        roles = claims.get("roles")
        return Principal(
            subject_id=str(claims["sub"]),
            domain_id=str(claims["domain"]),
            auth_method=AuthMethod.token,
            credential_id=str(claims["jti"]),
            issued_roles=frozenset(str(r) for r in roles) if isinstance(roles, list) else None,
        )

    # Refresh / revoke -----------------------------------------------------------

    async def refresh(self, raw_refresh_token: str) -> tuple[AccessToken, RefreshToken]:
        # The stored record is authoritative for expiry, so the signature is checked here and
        # `exp` is enforced against `expires_at` inside the rotation.
        claims = decode_and_validate(
            cfg=self._cfg, token=raw_refresh_token, kind="refresh", verify_exp=False
        )
        token_id = str(claims["jti"])
        # Once started, a rotation runs to commit or rollback even if the caller goes away.
        rotation = asyncio.create_task(self._rotate(token_id))
        rotation.add_done_callback(lambda t: _rotation_done(token_id, t))
        return await asyncio.shield(rotation)

    async def _rotate(self, token_id: str) -> tuple[AccessToken, RefreshToken]:
        now = self._clock().replace(tzinfo=None)
        async with transaction_scope(self._sessions, timeout=self._timeout) as session:
            repo = RefreshTokenRepo(session)
            record = await repo.get(token_id)
            if record is None:
                raise TokenInvalid("unknown refresh token")
            if record.revoked:
                log.warning("refresh_token_reuse", token_id=token_id, subject_id=record.subject_id)
                raise TokenRevoked("refresh token revoked")
            if record.expires_at <= now:
                raise TokenExpired("refresh token expired")

            successor_id = uuid.uuid4().hex
            if not await repo.revoke_if_active(token_id, now=now, replaced_by=successor_id):
                # Lost the race against a concurrent rotation of the same token.
                raise TokenRevoked("refresh token revoked")
            refresh = await self._persist_refresh(
                session, record.subject_id, record.domain_id, token_id=successor_id
            )

        access = self.issue_access_token(record.subject_id, record.domain_id)
        log.info(
            "refresh_token_rotated",
            subject_id=record.subject_id,
            domain_id=record.domain_id,
            token_id=token_id,
            successor_id=successor_id,
        )
        return access, refresh

    async def revoke(self, refresh_token_id: str) -> None:
        now = self._clock().replace(tzinfo=None)
        async with transaction_scope(self._sessions, timeout=self._timeout) as session:
            changed = await RefreshTokenRepo(session).revoke_if_active(refresh_token_id, now=now)
        if changed:
            log.info("refresh_token_revoked", token_id=refresh_token_id)

    async def revoke_raw(self, raw_refresh_token: str) -> str:
        # Logout must work with an expired token too; only the signature matters here.
        claims = decode_and_validate(
            cfg=self._cfg, token=raw_refresh_token, kind="refresh", verify_exp=False
        )
        token_id = str(claims["jti"])
        await self.revoke(token_id)
        return token_id

    async def revoke_all(self, subject_id: str, domain_id: str) -> int:
        now = self._clock().replace(tzinfo=None)
        async with transaction_scope(self._sessions, timeout=self._timeout) as session:
            count = await RefreshTokenRepo(session).revoke_all(
                subject_id=subject_id, domain_id=domain_id, now=now
            )
        log.info("refresh_tokens_revoked_all", subject_id=subject_id, domain_id=domain_id, count=count)
        return count


# --- Module Notes -----------------------------------------------------------
# Rotation relies on `RefreshTokenRepo.revoke_if_active` (conditional UPDATE ... WHERE
# revoked = false). That predicate, not any in-process lock, is what makes exactly one
# of several concurrent `refresh` calls succeed, including across processes.
