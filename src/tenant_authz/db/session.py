"""
tenant_authz.db.session

Async SQLAlchemy engine + session factory helpers.

Responsibilities:
- Create the async engine from settings.
- Create the async sessionmaker with safe defaults.
- Provide a bounded, error-translating transaction scope for the stores.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from tenant_authz.errors import StorageError
from tenant_authz.settings import Settings


def _driver_timeout_args(url: str, timeout: float) -> dict[str, float]:
    # Driver-level lock/statement timeout, matched to the store timeout.
    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite":
        return {"timeout": timeout}
    if parsed.get_driver_name() == "asyncpg":
        return {"command_timeout": timeout}
    return {}


def create_engine(settings: Settings) -> AsyncEngine:
    # pool_pre_ping helps detect stale connections in long-lived processes.
    return create_async_engine(
        settings.database_url,
        pool_pre_ping=True,
        connect_args=_driver_timeout_args(settings.database_url, settings.store_timeout_seconds),
    )


def create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # expire_on_commit=False avoids surprising lazy loads after commits.
    return async_sessionmaker(
        bind=engine,
        expire_on_commit=False,
        autoflush=False,
    )


@asynccontextmanager
async def transaction_scope(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    timeout: float,
) -> AsyncIterator[AsyncSession]:
    """
    One session, one transaction: commit on clean exit, rollback on any exception
    (including cancellation). Driver errors and timeouts surface as `StorageError`.
    """

    try:
        async with asyncio.timeout(timeout):
            async with session_factory() as session, session.begin():
                yield session
    except TimeoutError as e:
        raise StorageError(f"store timed out after {timeout}s") from e
    except SQLAlchemyError as e:
        raise StorageError(str(e)) from e


# --- Module Notes -----------------------------------------------------------
# The API layer also opens plain sessions via `api.deps.db_session` for read probes.
