"""
tenant_authz.api.deps

FastAPI dependency wiring for the API layer.

Responsibilities:
- Provide dependency functions for settings, DB sessions and the core services.
- Encapsulate app.state access patterns.
"""

from __future__ import annotations

from collections.abc import AsyncIterator

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tenant_authz.auth.access_keys import AccessKeyAuthenticator
from tenant_authz.policy.store import PolicyStore
from tenant_authz.settings import Settings, get_settings


def settings_dep(request: Request) -> Settings:
    # The settings the app was built with; falls back to env-driven settings outside an app.
    return getattr(request.app.state, "settings", None) or get_settings()


def sessionmaker_from_app(request: Request) -> async_sessionmaker[AsyncSession]:
    return request.app.state.sessionmaker  # type: ignore[attr-defined]


async def db_session(
    session_factory: async_sessionmaker[AsyncSession] = Depends(sessionmaker_from_app),
) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        yield session


def policy_store_from_app(request: Request) -> PolicyStore:
    return request.app.state.policy_store  # type: ignore[attr-defined]


def access_keys_from_app(request: Request) -> AccessKeyAuthenticator:
    return request.app.state.access_keys  # type: ignore[attr-defined]
