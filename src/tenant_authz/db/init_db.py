"""
tenant_authz.db.init_db

DB initialization helpers (dev/test convenience).

Responsibilities:
- Create the policy and credential tables for local development and tests.
- Backfill the per-domain policy version row for domains inserted outside `PolicyStore`
  (e.g. seeded by SQL), since every policy write locks that row.
- Keep production migration workflow separate (Alembic).
"""

from __future__ import annotations

from sqlalchemy import insert, select
from sqlalchemy.ext.asyncio import AsyncEngine

from tenant_authz.db import models  # noqa: F401  # register tables on Base.metadata
from tenant_authz.db.base import Base
from tenant_authz.db.models import Domain, PolicyVersion, utcnow


async def init_db(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        missing = (
            await conn.execute(
                select(Domain.id).where(
                    ~select(PolicyVersion.domain_id)
                    .where(PolicyVersion.domain_id == Domain.id)
                    .exists()
                )
            )
        ).scalars().all()
        if missing:
            await conn.execute(
                insert(PolicyVersion),
                [{"domain_id": d, "version": 0, "updated_at": utcnow()} for d in missing],
            )
