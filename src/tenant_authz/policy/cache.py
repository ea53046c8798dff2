"""
tenant_authz.policy.cache

In-memory materialized view of the policy store.

Responsibilities:
- Hold one immutable snapshot per domain (grant index + inheritance index) and memoise
  effective-permission closures per subject inside it.
- Invalidate a whole domain on every change notification; never touch other domains.
- Load each domain at most once at a time (single-flight), without holding any lock
  across the store round-trip.
- Bound staleness for writes made by other processes via periodic version sync.
"""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass, field

from tenant_authz.errors import StorageError
from tenant_authz.observability.logging import get_logger
from tenant_authz.policy.models import DomainPolicy, Permission, PolicyChange
from tenant_authz.policy.store import PolicyStore

log = get_logger(__name__)

_EMPTY: frozenset[Permission] = frozenset()


@dataclass(slots=True)
class DomainSnapshot:
    domain_id: str
    version: int
    grants: dict[str, frozenset[Permission]]
    parents: dict[str, frozenset[str]]
    _closures: dict[str, frozenset[Permission]] = field(default_factory=dict)
    _roles: dict[str, frozenset[str]] = field(default_factory=dict)

    @classmethod
    def from_policy(cls, policy: DomainPolicy) -> DomainSnapshot:
        grants: dict[str, set[Permission]] = {}
        for role_id, permission in policy.grants:
            grants.setdefault(role_id, set()).add(permission)
        parents: dict[str, set[str]] = {}
        for child_id, parent_id in policy.edges:
            parents.setdefault(child_id, set()).add(parent_id)
        return cls(
            domain_id=policy.domain_id,
            version=policy.version,
            grants={k: frozenset(v) for k, v in grants.items()},
            parents={k: frozenset(v) for k, v in parents.items()},
        )

    def reachable_roles(self, subject_id: str) -> frozenset[str]:
        cached = self._roles.get(subject_id)
        if cached is not None:
            return cached
        # Iterative DFS; the visited set also keeps a corrupted (cyclic) graph finite.
        visited: set[str] = set()
        stack = list(self.parents.get(subject_id, ()))
        while stack:
            role_id = stack.pop()
            if role_id in visited:
                continue
            visited.add(role_id)
            stack.extend(self.parents.get(role_id, ()))
        visited.discard(subject_id)
        roles = frozenset(visited)
        self._roles[subject_id] = roles
        return roles

    def effective_permissions(self, subject_id: str) -> frozenset[Permission]:
        cached = self._closures.get(subject_id)
        if cached is not None:
            return cached
        # The subject's own grants count when the subject is itself a role.
        collected = set(self.grants.get(subject_id, _EMPTY))
        for role_id in self.reachable_roles(subject_id):
            collected.update(self.grants.get(role_id, _EMPTY))
        permissions = frozenset(collected) if collected else _EMPTY
        self._closures[subject_id] = permissions
        return permissions


class PolicyCache:
    def __init__(self, store: PolicyStore, *, refresh_interval: float) -> None:
        self._store = store
        self._refresh_interval = refresh_interval
        self._snapshots: dict[str, DomainSnapshot] = {}
        self._generations: dict[str, int] = {}
        self._loading: dict[str, asyncio.Task[DomainSnapshot]] = {}
        self._refresher: asyncio.Task[None] | None = None
        self._unsubscribe = store.subscribe(self.on_change)

    # Reads ----------------------------------------------------------------------

    async def resolve_effective_permissions(
        self, domain_id: str, subject_id: str
    ) -> frozenset[Permission]:
        snapshot = await self.snapshot(domain_id)
        return snapshot.effective_permissions(subject_id)

    async def reachable_roles(self, domain_id: str, subject_id: str) -> frozenset[str]:
        snapshot = await self.snapshot(domain_id)
        return snapshot.reachable_roles(subject_id)

    async def snapshot(self, domain_id: str) -> DomainSnapshot:
        snapshot = self._snapshots.get(domain_id)
        if snapshot is not None:
            return snapshot
        task = self._loading.get(domain_id)
        if task is None:
            generation = self._generations.get(domain_id, 0)
            task = asyncio.create_task(self._load(domain_id, generation))
            self._loading[domain_id] = task
            task.add_done_callback(lambda t: self._load_done(domain_id, t))
        # Shield: a cancelled reader must not cancel the load other readers are waiting on.
        return await asyncio.shield(task)

    async def _load(self, domain_id: str, generation: int) -> DomainSnapshot:
        policy = await self._store.load_domain(domain_id)
        snapshot = DomainSnapshot.from_policy(policy)
        # Install only if no invalidation happened while the load was in flight.
        if self._generations.get(domain_id, 0) == generation:
            self._snapshots[domain_id] = snapshot
        log.debug("policy_domain_loaded", domain_id=domain_id, version=snapshot.version)
        return snapshot

    def _load_done(self, domain_id: str, task: asyncio.Task[DomainSnapshot]) -> None:
        if self._loading.get(domain_id) is task:
            del self._loading[domain_id]
        if not task.cancelled() and task.exception() is not None:
            log.warning("policy_domain_load_failed", domain_id=domain_id, error=str(task.exception()))

    # Invalidation ---------------------------------------------------------------

    def on_change(self, change: PolicyChange) -> None:
        self.invalidate(change.domain_id)

    def invalidate(self, domain_id: str) -> None:
        self._generations[domain_id] = self._generations.get(domain_id, 0) + 1
        self._snapshots.pop(domain_id, None)
        # New readers must not join a load that started before this change.
        self._loading.pop(domain_id, None)

    async def sync(self) -> list[str]:
        """Drop every cached domain whose persisted version moved (e.g. another process wrote)."""
        versions = await self._store.versions()
        stale = [
            domain_id
            for domain_id, snapshot in list(self._snapshots.items())
            if versions.get(domain_id, -1) != snapshot.version
        ]
        for domain_id in stale:
            self.invalidate(domain_id)
        if stale:
            log.info("policy_cache_synced", stale_domains=stale)
        return stale

    # Background refresh ---------------------------------------------------------

    def start(self) -> None:
        if self._refresher is None:
            self._refresher = asyncio.create_task(self._run_refresher(), name="policy-cache-sync")

    async def stop(self) -> None:
        if self._refresher is not None:
            self._refresher.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._refresher
            self._refresher = None

    async def _run_refresher(self) -> None:
        while True:
            await asyncio.sleep(self._refresh_interval)
            try:
                await self.sync()
            except StorageError as e:
                # Keep serving the last snapshot; the next tick retries.
                log.warning("policy_cache_sync_failed", error=str(e))

    def close(self) -> None:
        self._unsubscribe()


# --- Module Notes -----------------------------------------------------------
# Everything here runs on one event loop: snapshot installs and invalidations happen
# between awaits, so readers see either the old snapshot or none, never a half-built one.
