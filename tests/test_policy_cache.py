"""
tests.test_policy_cache

Policy cache: closure computation, per-domain invalidation, single-flight loads and
cross-process staleness recovery.
"""

from __future__ import annotations

import asyncio

import pytest

from tenant_authz.errors import StorageError
from tenant_authz.policy.cache import PolicyCache
from tenant_authz.policy.models import Permission
from tenant_authz.policy.store import PolicyStore


def _count_loads(store: PolicyStore, monkeypatch: pytest.MonkeyPatch) -> list[str]:
    calls: list[str] = []
    original = store.load_domain

    async def counting(domain_id: str):
        calls.append(domain_id)
        return await original(domain_id)

    monkeypatch.setattr(store, "load_domain", counting)
    return calls


@pytest.mark.asyncio
async def test_effective_permissions_follow_the_chain(
    store: PolicyStore, cache: PolicyCache, tenant
) -> None:
    d = tenant.domain_id
    await store.grant(d, tenant.admin_role_id, "/admin", "POST")
    await store.grant(d, tenant.reader_role_id, "/docs", "GET")
    await store.add_inheritance(d, "u1", tenant.reader_role_id)
    await store.add_inheritance(d, tenant.reader_role_id, tenant.admin_role_id)

    perms = await cache.resolve_effective_permissions(d, "u1")

    assert perms == {Permission("/admin", "POST"), Permission("/docs", "GET")}
    assert await cache.reachable_roles(d, "u1") == {tenant.reader_role_id, tenant.admin_role_id}
    assert await cache.resolve_effective_permissions(d, "stranger") == frozenset()


@pytest.mark.asyncio
async def test_closures_are_memoised(
    store: PolicyStore, cache: PolicyCache, tenant, monkeypatch: pytest.MonkeyPatch
) -> None:
    await store.add_inheritance(tenant.domain_id, "u1", tenant.reader_role_id)
    loads = _count_loads(store, monkeypatch)

    first = await cache.resolve_effective_permissions(tenant.domain_id, "u1")
    second = await cache.resolve_effective_permissions(tenant.domain_id, "u1")

    assert first is second
    assert loads == [tenant.domain_id]


@pytest.mark.asyncio
async def test_revoke_is_visible_immediately(store: PolicyStore, cache: PolicyCache, tenant) -> None:
    d = tenant.domain_id
    await store.grant(d, tenant.reader_role_id, "/docs", "GET")
    await store.add_inheritance(d, "u1", tenant.reader_role_id)
    assert Permission("/docs", "GET") in await cache.resolve_effective_permissions(d, "u1")

    await store.revoke_grant(d, tenant.reader_role_id, "/docs", "GET")

    assert await cache.resolve_effective_permissions(d, "u1") == frozenset()


@pytest.mark.asyncio
async def test_invalidation_is_per_domain(
    store: PolicyStore, cache: PolicyCache, tenant, monkeypatch: pytest.MonkeyPatch
) -> None:
    other = await store.create_domain("d2", "Domain Two")
    await cache.snapshot(tenant.domain_id)
    await cache.snapshot(other.id)

    await store.grant(tenant.domain_id, tenant.reader_role_id, "/docs", "GET")
    loads = _count_loads(store, monkeypatch)
    await cache.snapshot(tenant.domain_id)
    await cache.snapshot(other.id)

    assert loads == [tenant.domain_id]


@pytest.mark.asyncio
async def test_concurrent_misses_load_once(
    store: PolicyStore, cache: PolicyCache, tenant, monkeypatch: pytest.MonkeyPatch
) -> None:
    loads = _count_loads(store, monkeypatch)

    results = await asyncio.gather(
        *(cache.resolve_effective_permissions(tenant.domain_id, f"u{i}") for i in range(10))
    )

    assert len(results) == 10
    assert loads == [tenant.domain_id]


@pytest.mark.asyncio
async def test_load_started_before_a_change_is_not_installed(
    store: PolicyStore, cache: PolicyCache, tenant, monkeypatch: pytest.MonkeyPatch
) -> None:
    release = asyncio.Event()
    original = store.load_domain

    async def slow(domain_id: str):
        policy = await original(domain_id)
        await release.wait()
        return policy

    monkeypatch.setattr(store, "load_domain", slow)
    reader = asyncio.create_task(cache.snapshot(tenant.domain_id))
    await asyncio.sleep(0.05)

    cache.invalidate(tenant.domain_id)
    release.set()
    await reader

    # Nothing was installed, so the next read goes back to the store.
    loads = _count_loads(store, monkeypatch)
    await cache.snapshot(tenant.domain_id)
    assert loads == [tenant.domain_id]


@pytest.mark.asyncio
async def test_cancelled_reader_does_not_cancel_the_shared_load(
    store: PolicyStore, cache: PolicyCache, tenant, monkeypatch: pytest.MonkeyPatch
) -> None:
    release = asyncio.Event()
    original = store.load_domain

    async def slow(domain_id: str):
        await release.wait()
        return await original(domain_id)

    monkeypatch.setattr(store, "load_domain", slow)
    impatient = asyncio.create_task(cache.snapshot(tenant.domain_id))
    patient = asyncio.create_task(cache.snapshot(tenant.domain_id))
    await asyncio.sleep(0.05)

    impatient.cancel()
    release.set()

    snapshot = await patient
    assert snapshot.domain_id == tenant.domain_id
    with pytest.raises(asyncio.CancelledError):
        await impatient


@pytest.mark.asyncio
async def test_sync_picks_up_writes_from_another_process(
    settings, sessions, store: PolicyStore, cache: PolicyCache, tenant
) -> None:
    d = tenant.domain_id
    await store.add_inheritance(d, "u1", tenant.reader_role_id)
    assert await cache.resolve_effective_permissions(d, "u1") == frozenset()

    # A second store on the same database stands in for another process; nothing notifies us.
    elsewhere = PolicyStore(settings=settings, session_factory=sessions)
    await elsewhere.grant(d, tenant.reader_role_id, "/docs", "GET")
    assert await cache.resolve_effective_permissions(d, "u1") == frozenset()

    assert await cache.sync() == [d]
    assert await cache.resolve_effective_permissions(d, "u1") == {Permission("/docs", "GET")}
    assert await cache.sync() == []


@pytest.mark.asyncio
async def test_background_refresher_bounds_staleness(
    settings, sessions, store: PolicyStore, tenant
) -> None:
    d = tenant.domain_id
    await store.add_inheritance(d, "u1", tenant.reader_role_id)
    cache = PolicyCache(store, refresh_interval=0.05)
    cache.start()
    try:
        assert await cache.resolve_effective_permissions(d, "u1") == frozenset()
        elsewhere = PolicyStore(settings=settings, session_factory=sessions)
        await elsewhere.grant(d, tenant.reader_role_id, "/docs", "GET")

        async with asyncio.timeout(2):
            while not await cache.resolve_effective_permissions(d, "u1"):
                await asyncio.sleep(0.02)
    finally:
        await cache.stop()
        cache.close()


@pytest.mark.asyncio
async def test_store_failure_propagates_and_is_not_cached(
    store: PolicyStore, cache: PolicyCache, tenant, monkeypatch: pytest.MonkeyPatch
) -> None:
    async def down(domain_id: str):
        raise StorageError("store timed out")

    original = store.load_domain
    monkeypatch.setattr(store, "load_domain", down)
    with pytest.raises(StorageError):
        await cache.resolve_effective_permissions(tenant.domain_id, "u1")

    monkeypatch.setattr(store, "load_domain", original)
    assert await cache.resolve_effective_permissions(tenant.domain_id, "u1") == frozenset()
