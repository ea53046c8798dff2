from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tenant_authz.db.models import Domain, EntityStatus, PolicyVersion, Role, User


class DirectoryRepo:
    """Domains, roles and users: the facts policy writes and login validate against."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create_domain(
        self, *, code: str, display_name: str, domain_id: str | None = None
    ) -> Domain:
        domain = Domain(code=code, display_name=display_name)
        if domain_id is not None:
            domain.id = domain_id
        self._session.add(domain)
        await self._session.flush()
        # Every domain starts with a version row so policy writers always have one to lock.
        self._session.add(PolicyVersion(domain_id=domain.id, version=0))
        await self._session.flush()
        return domain

    async def get_domain(self, domain_id: str) -> Domain | None:
        return await self._session.get(Domain, domain_id)

    async def get_domain_by_code(self, code: str) -> Domain | None:
        stmt = select(Domain).where(Domain.code == code)
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def create_role(self, *, domain_id: str, code: str, role_id: str | None = None) -> Role:
        role = Role(domain_id=domain_id, code=code)
        if role_id is not None:
            role.id = role_id
        self._session.add(role)
        await self._session.flush()
        return role

    async def get_role_by_code(self, domain_id: str, code: str) -> Role | None:
        stmt = select(Role).where(Role.domain_id == domain_id, Role.code == code)
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def get_role(self, domain_id: str, role_id: str) -> Role | None:
        stmt = select(Role).where(Role.domain_id == domain_id, Role.id == role_id)
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def create_user(
        self,
        *,
        domain_id: str,
        username: str,
        password_hash: str,
        user_id: str | None = None,
        status: EntityStatus = EntityStatus.enabled,
    ) -> User:
        user = User(
            domain_id=domain_id, username=username, password_hash=password_hash, status=status
        )
        if user_id is not None:
            user.id = user_id
        self._session.add(user)
        await self._session.flush()
        return user

    async def get_user_by_username(self, domain_id: str, username: str) -> User | None:
        stmt = select(User).where(User.domain_id == domain_id, User.username == username)
        return (await self._session.execute(stmt)).scalar_one_or_none()
