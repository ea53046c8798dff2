"""
tenant_authz.db.repositories.policy

Repository for policy facts (grants, inheritance edges, per-domain versions).

Responsibilities:
- Insert/delete "p" (grant) and "g" (inheritance) rows for one domain.
- Read a domain's full rule set for the policy cache.
- Maintain the per-domain version counter.
"""

from __future__ import annotations

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tenant_authz.db.models import PolicyGrant, PolicyInheritance, PolicyVersion, utcnow


class PolicyRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    # Versions -------------------------------------------------------------------

    async def bump_version(self, domain_id: str) -> int | None:
        # The UPDATE takes the row/write lock that serializes writers of one domain.
        stmt = (
            update(PolicyVersion)
            .where(PolicyVersion.domain_id == domain_id)
            .values(version=PolicyVersion.version + 1, updated_at=utcnow())
        )
        result = await self._session.execute(stmt)
        if result.rowcount != 1:
            return None
        return await self.get_version(domain_id)

    async def get_version(self, domain_id: str) -> int | None:
        stmt = select(PolicyVersion.version).where(PolicyVersion.domain_id == domain_id)
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def all_versions(self) -> dict[str, int]:
        rows = await self._session.execute(select(PolicyVersion.domain_id, PolicyVersion.version))
        return {domain_id: version for domain_id, version in rows.all()}

    # Grants ---------------------------------------------------------------------

    async def add_grant(self, *, domain_id: str, role_id: str, object: str, action: str) -> bool:
        stmt = select(PolicyGrant.id).where(
            PolicyGrant.domain_id == domain_id,
            PolicyGrant.role_id == role_id,
            PolicyGrant.object == object,
            PolicyGrant.action == action,
        )
        if (await self._session.execute(stmt)).first() is not None:
            return False
        self._session.add(
            PolicyGrant(domain_id=domain_id, role_id=role_id, object=object, action=action)
        )
        await self._session.flush()
        return True

    async def delete_grant(
        self, *, domain_id: str, role_id: str, object: str, action: str
    ) -> bool:
        stmt = delete(PolicyGrant).where(
            PolicyGrant.domain_id == domain_id,
            PolicyGrant.role_id == role_id,
            PolicyGrant.object == object,
            PolicyGrant.action == action,
        )
        return (await self._session.execute(stmt)).rowcount > 0

    async def grants_for_role(self, domain_id: str, role_id: str) -> set[tuple[str, str]]:
        stmt = select(PolicyGrant.object, PolicyGrant.action).where(
            PolicyGrant.domain_id == domain_id, PolicyGrant.role_id == role_id
        )
        return {(obj, act) for obj, act in (await self._session.execute(stmt)).all()}

    async def grants_for_domain(self, domain_id: str) -> list[tuple[str, str, str]]:
        stmt = select(PolicyGrant.role_id, PolicyGrant.object, PolicyGrant.action).where(
            PolicyGrant.domain_id == domain_id
        )
        return [tuple(row) for row in (await self._session.execute(stmt)).all()]

    # Inheritance ----------------------------------------------------------------

    async def add_edge(self, *, domain_id: str, child_id: str, parent_role_id: str) -> bool:
        stmt = select(PolicyInheritance.id).where(
            PolicyInheritance.domain_id == domain_id,
            PolicyInheritance.child_id == child_id,
            PolicyInheritance.parent_role_id == parent_role_id,
        )
        if (await self._session.execute(stmt)).first() is not None:
            return False
        self._session.add(
            PolicyInheritance(domain_id=domain_id, child_id=child_id, parent_role_id=parent_role_id)
        )
        await self._session.flush()
        return True

    async def delete_edge(self, *, domain_id: str, child_id: str, parent_role_id: str) -> bool:
        stmt = delete(PolicyInheritance).where(
            PolicyInheritance.domain_id == domain_id,
            PolicyInheritance.child_id == child_id,
            PolicyInheritance.parent_role_id == parent_role_id,
        )
        return (await self._session.execute(stmt)).rowcount > 0

    async def edges_for_domain(self, domain_id: str) -> list[tuple[str, str]]:
        stmt = select(PolicyInheritance.child_id, PolicyInheritance.parent_role_id).where(
            PolicyInheritance.domain_id == domain_id
        )
        return [tuple(row) for row in (await self._session.execute(stmt)).all()]

    async def members_of(self, domain_id: str, parent_role_id: str) -> set[str]:
        stmt = select(PolicyInheritance.child_id).where(
            PolicyInheritance.domain_id == domain_id,
            PolicyInheritance.parent_role_id == parent_role_id,
        )
        return set((await self._session.execute(stmt)).scalars().all())


# --- Module Notes -----------------------------------------------------------
# Callers are expected to run `bump_version` first inside the same transaction so that
# concurrent writers of a domain see each other's committed edges before cycle checks.
