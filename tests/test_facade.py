"""
tests.test_facade

Authentication façade: login outcomes, audit events, credential resolution, and the
end-to-end grant/inherit/revoke scenario against the services.
"""

from __future__ import annotations

import pytest

from tenant_authz.auth.access_keys import AccessKeyAuthenticator
from tenant_authz.auth.audit import LoginOutcome
from tenant_authz.auth.facade import AuthenticationFacade
from tenant_authz.auth.models import AuthMethod, LoginContext
from tenant_authz.db.models import EntityStatus
from tenant_authz.errors import (
    AlreadyExists,
    AuthenticationFailed,
    DomainNotFound,
    TokenRevoked,
    Unauthenticated,
)
from tenant_authz.policy.engine import EnforcementEngine
from tenant_authz.policy.store import PolicyStore

PASSWORD = "correct horse battery"


@pytest.mark.asyncio
async def test_login_issues_token_pair(facade: AuthenticationFacade, tenant, audit) -> None:
    subject_id = await facade.register_user(tenant.domain_id, "alice", PASSWORD)
    context = LoginContext(client_ip="10.0.0.1", user_agent="pytest", request_id="req-1")

    result = await facade.login("d1", "alice", PASSWORD, context)

    assert result.principal.subject_id == subject_id
    assert result.principal.domain_id == tenant.domain_id
    assert result.refresh.subject_id == subject_id
    principal = await facade.authenticate(authorization=f"Bearer {result.access.raw}")
    assert principal.subject_id == subject_id
    assert principal.auth_method is AuthMethod.token

    (event,) = audit.events
    assert event.outcome is LoginOutcome.success
    assert (event.client_ip, event.user_agent, event.request_id) == ("10.0.0.1", "pytest", "req-1")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("domain", "username", "password", "reason"),
    [
        ("nope", "alice", PASSWORD, "unknown_domain"),
        ("d1", "bob", PASSWORD, "unknown_subject"),
        ("d1", "alice", "wrong password", "bad_password"),
    ],
)
async def test_login_failures_look_identical(
    facade: AuthenticationFacade, tenant, audit, domain, username, password, reason
) -> None:
    await facade.register_user(tenant.domain_id, "alice", PASSWORD)

    with pytest.raises(AuthenticationFailed) as exc:
        await facade.login(domain, username, password)

    assert str(exc.value) == "Invalid credentials"
    (event,) = audit.events
    assert event.outcome is LoginOutcome.failure
    assert event.reason == reason


@pytest.mark.asyncio
async def test_disabled_user_cannot_login(facade: AuthenticationFacade, tenant, audit) -> None:
    await facade.register_user(tenant.domain_id, "carol", PASSWORD, status=EntityStatus.disabled)

    with pytest.raises(AuthenticationFailed):
        await facade.login("d1", "carol", PASSWORD)
    assert audit.events[-1].reason == "subject_disabled"


@pytest.mark.asyncio
async def test_register_user_checks_domain_and_uniqueness(
    facade: AuthenticationFacade, tenant
) -> None:
    await facade.register_user(tenant.domain_id, "alice", PASSWORD)

    with pytest.raises(AlreadyExists):
        await facade.register_user(tenant.domain_id, "alice", PASSWORD)
    with pytest.raises(DomainNotFound):
        await facade.register_user("nope", "alice", PASSWORD)


@pytest.mark.asyncio
async def test_audit_failure_does_not_fail_login(facade: AuthenticationFacade, tenant, audit) -> None:
    await facade.register_user(tenant.domain_id, "alice", PASSWORD)

    def broken(_event) -> None:
        raise RuntimeError("sink down")

    audit.emit = broken
    result = await facade.login("d1", "alice", PASSWORD)
    assert result.access.raw


@pytest.mark.asyncio
async def test_refresh_and_logout_map_to_unauthenticated(
    facade: AuthenticationFacade, tenant
) -> None:
    await facade.register_user(tenant.domain_id, "alice", PASSWORD)
    result = await facade.login("d1", "alice", PASSWORD)

    _, rotated = await facade.refresh(result.refresh.raw)
    with pytest.raises(Unauthenticated) as exc:
        await facade.refresh(result.refresh.raw)
    assert isinstance(exc.value.__cause__, TokenRevoked)

    await facade.logout(rotated.raw)
    with pytest.raises(Unauthenticated):
        await facade.refresh(rotated.raw)
    with pytest.raises(Unauthenticated):
        await facade.logout("not-a-token")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "kwargs",
    [
        {},
        {"authorization": "Basic dXNlcjpwYXNz"},
        {"authorization": "Bearer "},
        {"authorization": "Bearer not.a.jwt"},
        {"access_key_id": "AKNOPE", "access_key_secret": "SKNOPE"},
        {"access_key_id": "AKNOPE"},
    ],
)
async def test_authenticate_rejects_bad_credentials(facade: AuthenticationFacade, kwargs) -> None:
    with pytest.raises(Unauthenticated):
        await facade.authenticate(**kwargs)


@pytest.mark.asyncio
async def test_authenticate_with_access_key(
    facade: AuthenticationFacade, access_keys: AccessKeyAuthenticator, tenant
) -> None:
    key, secret = await access_keys.create("u1", tenant.domain_id)

    principal = await facade.authenticate(access_key_id=key.id, access_key_secret=secret)

    assert principal.auth_method is AuthMethod.access_key
    assert principal.domain_id == tenant.domain_id
    await access_keys.revoke(key.id)
    with pytest.raises(Unauthenticated):
        await facade.authenticate(access_key_id=key.id, access_key_secret=secret)


@pytest.mark.asyncio
async def test_resolve_roles_reads_the_live_graph(
    facade: AuthenticationFacade, store: PolicyStore, tenant
) -> None:
    subject_id = await facade.register_user(tenant.domain_id, "alice", PASSWORD)
    result = await facade.login("d1", "alice", PASSWORD)
    assert result.principal.issued_roles == frozenset()

    await store.add_inheritance(tenant.domain_id, subject_id, tenant.reader_role_id)
    resolved = await facade.resolve_roles(result.principal)

    assert resolved.issued_roles == {tenant.reader_role_id}


@pytest.mark.asyncio
async def test_end_to_end_grant_inherit_revoke(
    facade: AuthenticationFacade, store: PolicyStore, enforcer: EnforcementEngine, tenant
) -> None:
    d = tenant.domain_id
    u1 = await facade.register_user(d, "u1", PASSWORD)
    login = await facade.login("d1", "u1", PASSWORD)
    principal = await facade.authenticate(authorization=f"Bearer {login.access.raw}")
    assert not await enforcer.check(principal, d, "/reports", "GET")

    await store.grant(d, tenant.reader_role_id, "/reports", "GET")
    await store.add_inheritance(d, u1, tenant.reader_role_id)
    assert await enforcer.check(principal, d, "/reports", "GET")

    await store.revoke_grant(d, tenant.reader_role_id, "/reports", "GET")
    assert not await enforcer.check(principal, d, "/reports", "GET")

    await facade.logout(login.refresh.raw)
    with pytest.raises(Unauthenticated) as exc:
        await facade.refresh(login.refresh.raw)
    assert isinstance(exc.value.__cause__, TokenRevoked)
