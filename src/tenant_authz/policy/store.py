"""
tenant_authz.policy.store

Persisted RBAC facts with change notification.

Responsibilities:
- Transactional grant / inheritance mutations, each serialized per domain through the
  domain's version row and announced to subscribers after commit.
- Enforce the write-time invariants: domain exists, referenced roles belong to the
  domain, the inheritance graph stays acyclic.
- Serve consistent per-domain reads and version vectors to the policy cache.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tenant_authz.db.models import Domain, Role
from tenant_authz.db.repositories.directory import DirectoryRepo
from tenant_authz.db.repositories.policy import PolicyRepo
from tenant_authz.db.session import transaction_scope
from tenant_authz.errors import AlreadyExists, CyclicRoleGraph, DomainNotFound, RoleNotFound
from tenant_authz.observability.logging import get_logger
from tenant_authz.policy.models import ChangeKind, DomainPolicy, Permission, PolicyChange
from tenant_authz.settings import Settings

log = get_logger(__name__)

ChangeListener = Callable[[PolicyChange], None]
_Mutation = Callable[[AsyncSession, PolicyRepo], Awaitable[bool]]


def reaches(parents: dict[str, set[str]], start: str, target: str) -> bool:
    """True if `target` is reachable from `start` following child -> parent edges."""
    stack = [start]
    seen: set[str] = set()
    while stack:
        node = stack.pop()
        if node == target:
            return True
        if node in seen:
            continue
        seen.add(node)
        stack.extend(parents.get(node, ()))
    return False


def _parent_index(edges: Iterable[tuple[str, str]]) -> dict[str, set[str]]:
    index: dict[str, set[str]] = {}
    for child, parent in edges:
        index.setdefault(child, set()).add(parent)
    return index


class PolicyStore:
    def __init__(
        self,
        *,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        self._sessions = session_factory
        self._timeout = settings.store_timeout_seconds
        self._listeners: list[ChangeListener] = []

    # Notifications --------------------------------------------------------------

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self, change: PolicyChange) -> None:
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:
                # The write is already committed; a broken listener must not turn it into an error.
                log.exception("policy_listener_failed", domain_id=change.domain_id, kind=str(change.kind))

    # Directory ------------------------------------------------------------------

    async def create_domain(
        self, code: str, display_name: str, *, domain_id: str | None = None
    ) -> Domain:
        async with transaction_scope(self._sessions, timeout=self._timeout) as session:
            directory = DirectoryRepo(session)
            if await directory.get_domain_by_code(code) is not None:
                raise AlreadyExists(f"domain code {code!r} is taken")
            domain = await directory.create_domain(
                code=code, display_name=display_name, domain_id=domain_id
            )
        log.info("domain_created", domain_id=domain.id, code=code)
        self._notify(PolicyChange(domain.id, ChangeKind.domain_created, 0))
        return domain

    async def create_role(self, domain_id: str, code: str, *, role_id: str | None = None) -> Role:
        async with transaction_scope(self._sessions, timeout=self._timeout) as session:
            directory = DirectoryRepo(session)
            if await directory.get_domain(domain_id) is None:
                raise DomainNotFound(domain_id)
            if await directory.get_role_by_code(domain_id, code) is not None:
                raise AlreadyExists(f"role code {code!r} is taken in domain {domain_id}")
            role = await directory.create_role(domain_id=domain_id, code=code, role_id=role_id)
        return role

    # Mutations ------------------------------------------------------------------

    async def _write(self, domain_id: str, kind: ChangeKind, mutation: _Mutation) -> bool:
        async with transaction_scope(self._sessions, timeout=self._timeout) as session:
            repo = PolicyRepo(session)
            version = await repo.bump_version(domain_id)
            if version is None:
                raise DomainNotFound(domain_id)
            changed = await mutation(session, repo)
        # Notify strictly after commit so listeners never observe an uncommitted state.
        if changed:
            log.info("policy_changed", domain_id=domain_id, kind=str(kind), version=version)
            self._notify(PolicyChange(domain_id, kind, version))
        return changed

    @staticmethod
    async def _require_role(session: AsyncSession, domain_id: str, role_id: str) -> None:
        if await DirectoryRepo(session).get_role(domain_id, role_id) is None:
            raise RoleNotFound(f"role {role_id} not found in domain {domain_id}")

    async def grant(self, domain_id: str, role_id: str, object: str, action: str) -> bool:
        async def mutation(session: AsyncSession, repo: PolicyRepo) -> bool:
            await self._require_role(session, domain_id, role_id)
            return await repo.add_grant(
                domain_id=domain_id, role_id=role_id, object=object, action=action
            )

        return await self._write(domain_id, ChangeKind.grant_added, mutation)

    async def revoke_grant(self, domain_id: str, role_id: str, object: str, action: str) -> bool:
        async def mutation(_: AsyncSession, repo: PolicyRepo) -> bool:
            return await repo.delete_grant(
                domain_id=domain_id, role_id=role_id, object=object, action=action
            )

        return await self._write(domain_id, ChangeKind.grant_revoked, mutation)

    async def add_inheritance(self, domain_id: str, child_id: str, parent_role_id: str) -> bool:
        async def mutation(session: AsyncSession, repo: PolicyRepo) -> bool:
            await self._require_role(session, domain_id, parent_role_id)
            parents = _parent_index(await repo.edges_for_domain(domain_id))
            if child_id == parent_role_id or reaches(parents, parent_role_id, child_id):
                log.warning(
                    "policy_cycle_rejected",
                    domain_id=domain_id,
                    child_id=child_id,
                    parent_role_id=parent_role_id,
                )
                raise CyclicRoleGraph(domain_id, child_id, parent_role_id)
            return await repo.add_edge(
                domain_id=domain_id, child_id=child_id, parent_role_id=parent_role_id
            )

        return await self._write(domain_id, ChangeKind.inheritance_added, mutation)

    async def remove_inheritance(self, domain_id: str, child_id: str, parent_role_id: str) -> bool:
        async def mutation(_: AsyncSession, repo: PolicyRepo) -> bool:
            return await repo.delete_edge(
                domain_id=domain_id, child_id=child_id, parent_role_id=parent_role_id
            )

        return await self._write(domain_id, ChangeKind.inheritance_removed, mutation)

    async def set_role_grants(
        self, domain_id: str, role_id: str, permissions: Iterable[Permission]
    ) -> bool:
        desired = {(p.object, p.action) for p in permissions}

        async def mutation(session: AsyncSession, repo: PolicyRepo) -> bool:
            await self._require_role(session, domain_id, role_id)
            existing = await repo.grants_for_role(domain_id, role_id)
            for obj, act in desired - existing:
                await repo.add_grant(domain_id=domain_id, role_id=role_id, object=obj, action=act)
            for obj, act in existing - desired:
                await repo.delete_grant(domain_id=domain_id, role_id=role_id, object=obj, action=act)
            return desired != existing

        return await self._write(domain_id, ChangeKind.grants_replaced, mutation)

    async def set_role_members(
        self, domain_id: str, role_id: str, subject_ids: Iterable[str]
    ) -> bool:
        desired = set(subject_ids)

        async def mutation(session: AsyncSession, repo: PolicyRepo) -> bool:
            await self._require_role(session, domain_id, role_id)
            existing = await repo.members_of(domain_id, role_id)
            parents = _parent_index(await repo.edges_for_domain(domain_id))
            for member in existing - desired:
                await repo.delete_edge(domain_id=domain_id, child_id=member, parent_role_id=role_id)
                parents.get(member, set()).discard(role_id)
            for member in sorted(desired - existing):
                if member == role_id or reaches(parents, role_id, member):
                    raise CyclicRoleGraph(domain_id, member, role_id)
                await repo.add_edge(domain_id=domain_id, child_id=member, parent_role_id=role_id)
                parents.setdefault(member, set()).add(role_id)
            return desired != existing

        return await self._write(domain_id, ChangeKind.members_replaced, mutation)

    # Reads ----------------------------------------------------------------------

    async def load_domain(self, domain_id: str) -> DomainPolicy:
        async with transaction_scope(self._sessions, timeout=self._timeout) as session:
            repo = PolicyRepo(session)
            version = await repo.get_version(domain_id)
            grants = await repo.grants_for_domain(domain_id)
            edges = await repo.edges_for_domain(domain_id)
        return DomainPolicy(
            domain_id=domain_id,
            # -1 marks "no such domain"; any real version supersedes it on the next sync.
            version=version if version is not None else -1,
            grants=tuple((role, Permission(obj, act)) for role, obj, act in grants),
            edges=tuple(edges),
        )

    async def versions(self) -> dict[str, int]:
        async with transaction_scope(self._sessions, timeout=self._timeout) as session:
            return await PolicyRepo(session).all_versions()


# --- Module Notes -----------------------------------------------------------
# Cross-process consistency comes from the version row: another process's write bumps it,
# and `PolicyCache.sync()` drops any domain whose cached version differs.
