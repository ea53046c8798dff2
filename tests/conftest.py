"""
tests.conftest

Shared fixtures: a file-backed SQLite database per test and the core services wired on it.
"""

from __future__ import annotations

import sqlite3
from collections.abc import AsyncIterator, Callable, Iterator
from contextlib import AbstractContextManager, contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime

import httpx
import pytest
import pytest_asyncio
from argon2 import PasswordHasher, Type
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tenant_authz.api.app import create_app
from tenant_authz.auth.access_keys import AccessKeyAuthenticator
from tenant_authz.auth.audit import LoginEvent
from tenant_authz.auth.facade import AuthenticationFacade
from tenant_authz.auth.passwords import Argon2PasswordVerifier
from tenant_authz.auth.tokens import TokenService
from tenant_authz.db.init_db import init_db
from tenant_authz.db.session import create_engine, create_sessionmaker
from tenant_authz.policy.cache import PolicyCache
from tenant_authz.policy.engine import EnforcementEngine
from tenant_authz.policy.matching import PermissionMatcher
from tenant_authz.policy.store import PolicyStore
from tenant_authz.settings import Settings

TEST_SECRET = "test-signing-key-0123456789abcdef0123456789"


class FrozenClock:
    """Settable clock; always returns an aware UTC datetime."""

    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime.now(tz=UTC)

    def __call__(self) -> datetime:
        return self.now


class RecordingAuditSink:
    def __init__(self) -> None:
        self.events: list[LoginEvent] = []

    def emit(self, event: LoginEvent) -> None:
        self.events.append(event)


def fast_passwords() -> Argon2PasswordVerifier:
    # Minimal Argon2 cost keeps the suite quick; production uses the library defaults.
    return Argon2PasswordVerifier(
        PasswordHasher(time_cost=1, memory_cost=1024, parallelism=1, type=Type.ID)
    )


@contextmanager
def _exclusive_lock(path) -> Iterator[None]:
    """Hold an exclusive SQLite lock on `path` from a second, plain connection."""
    conn = sqlite3.connect(path, isolation_level=None)
    try:
        conn.execute("BEGIN EXCLUSIVE")
        yield
    finally:
        conn.close()


@pytest.fixture
def database_lock(tmp_path) -> Callable[[], AbstractContextManager[None]]:
    """Factory for a context manager that locks the test database exclusively."""
    return lambda: _exclusive_lock(tmp_path / "authz.db")


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        env="test",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'authz.db'}",
        jwt_secret=TEST_SECRET,
        policy_refresh_interval_seconds=3600,
    )


@pytest_asyncio.fixture
async def sessions(settings: Settings) -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    engine = create_engine(settings)
    await init_db(engine)
    try:
        yield create_sessionmaker(engine)
    finally:
        await engine.dispose()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def store(settings: Settings, sessions: async_sessionmaker[AsyncSession]) -> PolicyStore:
    return PolicyStore(settings=settings, session_factory=sessions)


@pytest.fixture
def cache(store: PolicyStore) -> Iterator[PolicyCache]:
    c = PolicyCache(store, refresh_interval=3600)
    yield c
    c.close()


@pytest.fixture
def tokens(
    settings: Settings, sessions: async_sessionmaker[AsyncSession], clock: FrozenClock
) -> TokenService:
    return TokenService(settings=settings, session_factory=sessions, clock=clock)


@pytest.fixture
def access_keys(
    settings: Settings, sessions: async_sessionmaker[AsyncSession], clock: FrozenClock
) -> AccessKeyAuthenticator:
    return AccessKeyAuthenticator(settings=settings, session_factory=sessions, clock=clock)


@pytest.fixture
def audit() -> RecordingAuditSink:
    return RecordingAuditSink()


@pytest.fixture
def facade(
    settings: Settings,
    sessions: async_sessionmaker[AsyncSession],
    tokens: TokenService,
    access_keys: AccessKeyAuthenticator,
    cache: PolicyCache,
    audit: RecordingAuditSink,
) -> AuthenticationFacade:
    return AuthenticationFacade(
        settings=settings,
        session_factory=sessions,
        tokens=tokens,
        access_keys=access_keys,
        cache=cache,
        passwords=fast_passwords(),
        audit=audit,
    )


@pytest.fixture
def enforcer(cache: PolicyCache) -> EnforcementEngine:
    return EnforcementEngine(cache, PermissionMatcher("pattern"))


@dataclass(frozen=True)
class Tenant:
    domain_id: str
    admin_role_id: str
    reader_role_id: str


@pytest_asyncio.fixture
async def tenant(store: PolicyStore) -> Tenant:
    domain = await store.create_domain("d1", "Domain One")
    admin = await store.create_role(domain.id, "admin")
    reader = await store.create_role(domain.id, "reader")
    return Tenant(domain_id=domain.id, admin_role_id=admin.id, reader_role_id=reader.id)


@pytest_asyncio.fixture
async def client(settings: Settings) -> AsyncIterator[httpx.AsyncClient]:
    app = create_app(settings=settings, passwords=fast_passwords())
    # httpx ASGITransport does not drive lifespan events; run them explicitly.
    async with app.router.lifespan_context(app):
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
            yield c
