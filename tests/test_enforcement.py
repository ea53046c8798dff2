"""
tests.test_enforcement

Enforcement engine: domain isolation, inheritance, fail-closed behaviour.
"""

from __future__ import annotations

import time

import pytest

from tenant_authz.auth.models import AuthMethod, Principal
from tenant_authz.db.session import create_engine, create_sessionmaker
from tenant_authz.errors import StorageError
from tenant_authz.policy.cache import PolicyCache
from tenant_authz.policy.engine import EnforcementEngine
from tenant_authz.policy.matching import PermissionMatcher
from tenant_authz.policy.store import PolicyStore
from tenant_authz.settings import Settings


def _principal(subject_id: str, domain_id: str) -> Principal:
    return Principal(subject_id=subject_id, domain_id=domain_id, auth_method=AuthMethod.token)


@pytest.mark.asyncio
async def test_grant_through_inherited_role(
    store: PolicyStore, enforcer: EnforcementEngine, tenant
) -> None:
    d = tenant.domain_id
    u1 = _principal("u1", d)
    assert not await enforcer.check(u1, d, "/v1/reports/7", "GET")

    await store.grant(d, tenant.admin_role_id, "/v1/reports/:id", "GET")
    await store.add_inheritance(d, tenant.reader_role_id, tenant.admin_role_id)
    await store.add_inheritance(d, "u1", tenant.reader_role_id)

    assert await enforcer.check(u1, d, "/v1/reports/7", "GET")
    assert not await enforcer.check(u1, d, "/v1/reports/7", "DELETE")
    assert not await enforcer.check(_principal("u2", d), d, "/v1/reports/7", "GET")


@pytest.mark.asyncio
async def test_cross_domain_query_is_denied(
    store: PolicyStore, enforcer: EnforcementEngine, tenant
) -> None:
    other = await store.create_domain("d2", "Domain Two")
    other_admin = await store.create_role(other.id, "admin")
    await store.grant(other.id, other_admin.id, "*", "*")
    await store.add_inheritance(other.id, "u1", other_admin.id)

    # u1 holds everything in d2, but the principal was authenticated in d1.
    assert not await enforcer.check(_principal("u1", tenant.domain_id), other.id, "/x", "GET")
    assert await enforcer.check(_principal("u1", other.id), other.id, "/x", "GET")


@pytest.mark.asyncio
async def test_same_subject_id_in_two_domains_is_independent(
    store: PolicyStore, enforcer: EnforcementEngine, tenant
) -> None:
    other = await store.create_domain("d2", "Domain Two")
    await store.create_role(other.id, "reader")
    await store.grant(tenant.domain_id, tenant.reader_role_id, "/docs", "GET")
    await store.add_inheritance(tenant.domain_id, "u1", tenant.reader_role_id)

    assert await enforcer.check(_principal("u1", tenant.domain_id), tenant.domain_id, "/docs", "GET")
    assert not await enforcer.check(_principal("u1", other.id), other.id, "/docs", "GET")


@pytest.mark.asyncio
async def test_store_outage_denies(
    store: PolicyStore, cache: PolicyCache, tenant, monkeypatch: pytest.MonkeyPatch
) -> None:
    await store.grant(tenant.domain_id, tenant.admin_role_id, "*", "*")
    await store.add_inheritance(tenant.domain_id, "u1", tenant.admin_role_id)

    async def down(domain_id: str):
        raise StorageError("store timed out")

    monkeypatch.setattr(store, "load_domain", down)
    enforcer = EnforcementEngine(cache, PermissionMatcher("pattern"))

    assert not await enforcer.check(_principal("u1", tenant.domain_id), tenant.domain_id, "/x", "GET")


@pytest.mark.asyncio
async def test_exact_mode_ignores_wildcards(store: PolicyStore, cache: PolicyCache, tenant) -> None:
    await store.grant(tenant.domain_id, tenant.admin_role_id, "*", "*")
    await store.add_inheritance(tenant.domain_id, "u1", tenant.admin_role_id)
    enforcer = EnforcementEngine(cache, PermissionMatcher("exact"))
    u1 = _principal("u1", tenant.domain_id)

    assert not await enforcer.check(u1, tenant.domain_id, "/x", "GET")
    assert await enforcer.check(u1, tenant.domain_id, "*", "*")


@pytest.mark.asyncio
async def test_unknown_domain_denies_without_raising(enforcer: EnforcementEngine) -> None:
    assert not await enforcer.check(_principal("u1", "nowhere"), "nowhere", "/x", "GET")


@pytest.mark.asyncio
async def test_locked_database_denies_within_the_store_timeout(
    settings: Settings, store: PolicyStore, tenant, database_lock
) -> None:
    await store.grant(tenant.domain_id, tenant.admin_role_id, "*", "*")
    await store.add_inheritance(tenant.domain_id, "u1", tenant.admin_role_id)

    quick = settings.model_copy(update={"store_timeout_seconds": 0.3})
    engine = create_engine(quick)
    cold = PolicyCache(
        PolicyStore(settings=quick, session_factory=create_sessionmaker(engine)),
        refresh_interval=3600,
    )
    enforcer = EnforcementEngine(cold, PermissionMatcher("pattern"))
    principal = _principal("u1", tenant.domain_id)
    try:
        with database_lock():
            started = time.monotonic()
            allowed = await enforcer.check(principal, tenant.domain_id, "/x", "GET")
            elapsed = time.monotonic() - started
        # Once the lock is gone the same engine serves the real decision.
        recovered = await enforcer.check(principal, tenant.domain_id, "/x", "GET")
    finally:
        cold.close()
        await engine.dispose()

    assert not allowed
    assert elapsed < 2.0
    assert recovered
