"""
tenant_authz.auth.access_keys

Access key authenticator: long-lived machine credentials.

Responsibilities:
- Create keys with a random secret, storing only its hash and revealing the plaintext once.
- Authenticate (key id, secret) pairs into a `Principal` bound to the key's domain.
- Revoke keys; list a subject's keys without ever exposing secret material.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
import uuid
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tenant_authz.auth.models import AccessKey, AuthMethod, Principal
from tenant_authz.db.models import AccessKeyRecord, AccessKeyStatus
from tenant_authz.db.repositories.credentials import AccessKeyRepo
from tenant_authz.db.session import transaction_scope
from tenant_authz.errors import (
    CredentialExpired,
    CredentialMismatch,
    CredentialNotFound,
    CredentialRevoked,
)
from tenant_authz.observability.logging import get_logger
from tenant_authz.settings import Settings

log = get_logger(__name__)

KEY_ID_PREFIX = "AK"
SECRET_PREFIX = "SK"


def hash_secret(secret: str) -> str:
    # Secrets are 256-bit random values, so a fast digest is sufficient (no password stretching).
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


def _to_view(record: AccessKeyRecord) -> AccessKey:
    return AccessKey(
        id=record.id,
        owner_subject_id=record.owner_subject_id,
        domain_id=record.domain_id,
        status=str(record.status),
        created_at=record.created_at,
        expires_at=record.expires_at,
        description=record.description,
    )


class AccessKeyAuthenticator:
    def __init__(
        self,
        *,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Callable[[], datetime] = lambda: datetime.now(tz=UTC),
    ) -> None:
        self._sessions = session_factory
        self._timeout = settings.store_timeout_seconds
        self._clock = clock

    def _now(self) -> datetime:
        return self._clock().replace(tzinfo=None)

    async def create(
        self,
        owner_subject_id: str,
        domain_id: str,
        ttl: timedelta | None = None,
        *,
        description: str | None = None,
    ) -> tuple[AccessKey, str]:
        key_id = f"{KEY_ID_PREFIX}{uuid.uuid4().hex.upper()}"
        secret = f"{SECRET_PREFIX}{secrets.token_urlsafe(32)}"
        now = self._now()
        async with transaction_scope(self._sessions, timeout=self._timeout) as session:
            record = await AccessKeyRepo(session).create(
                key_id=key_id,
                owner_subject_id=owner_subject_id,
                domain_id=domain_id,
                secret_hash=hash_secret(secret),
                created_at=now,
                expires_at=now + ttl if ttl is not None else None,
                description=description,
            )
        log.info("access_key_created", key_id=key_id, owner_subject_id=owner_subject_id, domain_id=domain_id)
        return _to_view(record), secret

    async def authenticate(self, key_id: str, secret: str) -> Principal:
        async with transaction_scope(self._sessions, timeout=self._timeout) as session:
            record = await AccessKeyRepo(session).get(key_id)
        if record is None:
            # Burn a comparison anyway so unknown ids cost the same as wrong secrets.
            hmac.compare_digest(hash_secret(secret), hash_secret(key_id))
            raise CredentialNotFound(key_id)
        # Status and expiry are only reported to a caller holding the right secret.
        if not hmac.compare_digest(hash_secret(secret), record.secret_hash):
            raise CredentialMismatch(key_id)
        if record.status != AccessKeyStatus.active:
            raise CredentialRevoked(key_id)
        if record.expires_at is not None and record.expires_at <= self._now():
            raise CredentialExpired(key_id)
        return Principal(
            subject_id=record.owner_subject_id,
            domain_id=record.domain_id,
            auth_method=AuthMethod.access_key,
            credential_id=record.id,
        )

    async def revoke(self, key_id: str) -> None:
        async with transaction_scope(self._sessions, timeout=self._timeout) as session:
            if not await AccessKeyRepo(session).set_status(key_id, AccessKeyStatus.revoked):
                raise CredentialNotFound(key_id)
        log.info("access_key_revoked", key_id=key_id)

    async def get(self, key_id: str) -> AccessKey:
        async with transaction_scope(self._sessions, timeout=self._timeout) as session:
            record = await AccessKeyRepo(session).get(key_id)
        if record is None:
            raise CredentialNotFound(key_id)
        return _to_view(record)

    async def list_for_owner(self, owner_subject_id: str) -> list[AccessKey]:
        async with transaction_scope(self._sessions, timeout=self._timeout) as session:
            records = await AccessKeyRepo(session).list_for_owner(owner_subject_id)
        return [_to_view(r) for r in records]


# --- Module Notes -----------------------------------------------------------
# Keys are never rotated automatically; the bound domain is fixed at creation. A key is
# only ever disabled (status REVOKED), never deleted, so its id cannot be reissued.
