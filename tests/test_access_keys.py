"""
tests.test_access_keys

Access key authenticator: one-time secret reveal, authentication and its failure kinds.
"""

from __future__ import annotations

from dataclasses import fields
from datetime import UTC, datetime, timedelta

import pytest

from tenant_authz.auth.access_keys import KEY_ID_PREFIX, AccessKeyAuthenticator
from tenant_authz.auth.models import AccessKey, AuthMethod
from tenant_authz.errors import (
    CredentialExpired,
    CredentialMismatch,
    CredentialNotFound,
    CredentialRevoked,
)


@pytest.mark.asyncio
async def test_create_then_authenticate(access_keys: AccessKeyAuthenticator) -> None:
    key, secret = await access_keys.create("u1", "d1", description="ci")

    assert key.id.startswith(KEY_ID_PREFIX)
    principal = await access_keys.authenticate(key.id, secret)
    assert principal.subject_id == "u1"
    assert principal.domain_id == "d1"
    assert principal.auth_method is AuthMethod.access_key
    assert principal.credential_id == key.id


@pytest.mark.asyncio
async def test_secret_is_revealed_only_once(access_keys: AccessKeyAuthenticator) -> None:
    key, secret = await access_keys.create("u1", "d1")

    assert "secret" not in {f.name for f in fields(AccessKey)}
    fetched = await access_keys.get(key.id)
    listed = await access_keys.list_for_owner("u1")
    for view in (key, fetched, *listed):
        assert secret not in repr(view)
    assert [k.id for k in listed] == [key.id]


@pytest.mark.asyncio
async def test_wrong_secret_is_mismatch(access_keys: AccessKeyAuthenticator) -> None:
    key, secret = await access_keys.create("u1", "d1")

    with pytest.raises(CredentialMismatch):
        await access_keys.authenticate(key.id, secret + "x")


@pytest.mark.asyncio
async def test_unknown_key_is_not_found(access_keys: AccessKeyAuthenticator) -> None:
    with pytest.raises(CredentialNotFound):
        await access_keys.authenticate("AKDOESNOTEXIST", "SKwhatever")
    with pytest.raises(CredentialNotFound):
        await access_keys.revoke("AKDOESNOTEXIST")


@pytest.mark.asyncio
async def test_revoked_key_is_rejected(access_keys: AccessKeyAuthenticator) -> None:
    key, secret = await access_keys.create("u1", "d1")

    await access_keys.revoke(key.id)

    with pytest.raises(CredentialRevoked):
        await access_keys.authenticate(key.id, secret)
    assert (await access_keys.get(key.id)).status == "REVOKED"


@pytest.mark.asyncio
async def test_expired_key_is_rejected(access_keys: AccessKeyAuthenticator, clock) -> None:
    clock.now = datetime.now(tz=UTC) - timedelta(days=2)
    key, secret = await access_keys.create("u1", "d1", timedelta(days=1))
    clock.now = datetime.now(tz=UTC)

    with pytest.raises(CredentialExpired):
        await access_keys.authenticate(key.id, secret)


@pytest.mark.asyncio
async def test_key_without_ttl_never_expires(access_keys: AccessKeyAuthenticator, clock) -> None:
    key, secret = await access_keys.create("u1", "d1")
    clock.now = datetime.now(tz=UTC) + timedelta(days=3650)

    assert key.expires_at is None
    assert (await access_keys.authenticate(key.id, secret)).subject_id == "u1"


@pytest.mark.asyncio
async def test_key_state_is_hidden_behind_the_secret(
    access_keys: AccessKeyAuthenticator, clock
) -> None:
    revoked, _ = await access_keys.create("u1", "d1")
    await access_keys.revoke(revoked.id)
    clock.now = datetime.now(tz=UTC) - timedelta(days=2)
    expired, _ = await access_keys.create("u1", "d1", timedelta(days=1))
    clock.now = datetime.now(tz=UTC)

    # Without the secret, a revoked or expired key looks like any wrong guess.
    with pytest.raises(CredentialMismatch):
        await access_keys.authenticate(revoked.id, "SKguess")
    with pytest.raises(CredentialMismatch):
        await access_keys.authenticate(expired.id, "SKguess")
