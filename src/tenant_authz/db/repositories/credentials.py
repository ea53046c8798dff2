"""
tenant_authz.db.repositories.credentials

Repositories for durable credentials (refresh tokens, access keys).

Responsibilities:
- Persist and look up refresh token records; revoke them with a conditional update.
- Persist and look up access key records (hash only; the plaintext secret never lands here).
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tenant_authz.db.models import AccessKeyRecord, AccessKeyStatus, RefreshTokenRecord


class RefreshTokenRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(
        self,
        *,
        token_id: str,
        subject_id: str,
        domain_id: str,
        issued_at: datetime,
        expires_at: datetime,
    ) -> RefreshTokenRecord:
        record = RefreshTokenRecord(
            id=token_id,
            subject_id=subject_id,
            domain_id=domain_id,
            issued_at=issued_at,
            expires_at=expires_at,
            revoked=False,
        )
        self._session.add(record)
        await self._session.flush()
        return record

    async def get(self, token_id: str) -> RefreshTokenRecord | None:
        return await self._session.get(RefreshTokenRecord, token_id)

    async def revoke_if_active(
        self, token_id: str, *, now: datetime, replaced_by: str | None = None
    ) -> bool:
        # Compare-and-set on the "not yet revoked" predicate: only one caller can flip it.
        stmt = (
            update(RefreshTokenRecord)
            .where(RefreshTokenRecord.id == token_id, RefreshTokenRecord.revoked.is_(False))
            .values(revoked=True, revoked_at=now, replaced_by=replaced_by)
            .execution_options(synchronize_session=False)
        )
        return (await self._session.execute(stmt)).rowcount == 1

    async def revoke_all(self, *, subject_id: str, domain_id: str, now: datetime) -> int:
        stmt = (
            update(RefreshTokenRecord)
            .where(
                RefreshTokenRecord.subject_id == subject_id,
                RefreshTokenRecord.domain_id == domain_id,
                RefreshTokenRecord.revoked.is_(False),
            )
            .values(revoked=True, revoked_at=now)
            .execution_options(synchronize_session=False)
        )
        return (await self._session.execute(stmt)).rowcount


class AccessKeyRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(
        self,
        *,
        key_id: str,
        owner_subject_id: str,
        domain_id: str,
        secret_hash: str,
        created_at: datetime,
        expires_at: datetime | None,
        description: str | None = None,
    ) -> AccessKeyRecord:
        record = AccessKeyRecord(
            id=key_id,
            owner_subject_id=owner_subject_id,
            domain_id=domain_id,
            secret_hash=secret_hash,
            description=description,
            status=AccessKeyStatus.active,
            created_at=created_at,
            expires_at=expires_at,
        )
        self._session.add(record)
        await self._session.flush()
        return record

    async def get(self, key_id: str) -> AccessKeyRecord | None:
        return await self._session.get(AccessKeyRecord, key_id)

    async def list_for_owner(self, owner_subject_id: str) -> list[AccessKeyRecord]:
        stmt = (
            select(AccessKeyRecord)
            .where(AccessKeyRecord.owner_subject_id == owner_subject_id)
            .order_by(AccessKeyRecord.created_at)
        )
        return list((await self._session.execute(stmt)).scalars().all())

    async def set_status(self, key_id: str, status: AccessKeyStatus) -> bool:
        stmt = (
            update(AccessKeyRecord)
            .where(AccessKeyRecord.id == key_id)
            .values(status=status)
            .execution_options(synchronize_session=False)
        )
        return (await self._session.execute(stmt)).rowcount == 1
