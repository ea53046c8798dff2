"""
tenant_authz.api.app

FastAPI app factory for the tenant identity and permission service.

Responsibilities:
- Build the FastAPI application and register routers/middleware/error mapping.
- Initialize and dispose shared infrastructure (DB engine/session factory, policy cache
  refresher, login audit queue).
- Provide a single composition root where cross-cutting concerns live.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from tenant_authz import __version__
from tenant_authz.api.errors import register_exception_handlers
from tenant_authz.api.routers.access_keys import router as access_keys_router
from tenant_authz.api.routers.auth import router as auth_router
from tenant_authz.api.routers.dev_bootstrap import router as dev_bootstrap_router
from tenant_authz.api.routers.directory import router as directory_router
from tenant_authz.api.routers.health import router as health_router
from tenant_authz.api.routers.policies import router as policies_router
from tenant_authz.auth.access_keys import AccessKeyAuthenticator
from tenant_authz.auth.audit import AuditSink, LogAuditSink, QueueAuditSink
from tenant_authz.auth.facade import AuthenticationFacade
from tenant_authz.auth.passwords import Argon2PasswordVerifier, PasswordVerifier
from tenant_authz.auth.tokens import TokenService
from tenant_authz.db.init_db import init_db
from tenant_authz.db.session import create_engine, create_sessionmaker
from tenant_authz.observability.logging import configure_logging, get_logger
from tenant_authz.observability.middleware import RequestContextMiddleware
from tenant_authz.policy.cache import PolicyCache
from tenant_authz.policy.engine import EnforcementEngine
from tenant_authz.policy.matching import PermissionMatcher
from tenant_authz.policy.store import PolicyStore
from tenant_authz.settings import Settings

log = get_logger(__name__)


def create_app(
    *,
    settings: Settings,
    passwords: PasswordVerifier | None = None,
    audit_sink: AuditSink | None = None,
) -> FastAPI:
    # Configure structured logging once at process startup (before app serves requests).
    configure_logging(service_name=settings.service_name, level=settings.log_level)
    # Refuse to build an app that would sign tokens with a weak or missing key.
    settings.validate_security()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        log.info("startup", env=settings.env, wildcard_mode=settings.wildcard_mode)
        engine = create_engine(settings)
        sessionmaker = create_sessionmaker(engine)
        if settings.env in ("dev", "test"):
            # Dev/test convenience: create tables automatically. Prod should use Alembic migrations.
            await init_db(engine)

        store = PolicyStore(settings=settings, session_factory=sessionmaker)
        cache = PolicyCache(store, refresh_interval=settings.policy_refresh_interval_seconds)
        tokens = TokenService(settings=settings, session_factory=sessionmaker)
        access_keys = AccessKeyAuthenticator(settings=settings, session_factory=sessionmaker)
        audit = QueueAuditSink(audit_sink or LogAuditSink())

        app.state.engine = engine
        app.state.sessionmaker = sessionmaker
        app.state.policy_store = store
        app.state.policy_cache = cache
        app.state.enforcer = EnforcementEngine(cache, PermissionMatcher(settings.wildcard_mode))
        app.state.tokens = tokens
        app.state.access_keys = access_keys
        app.state.audit = audit
        app.state.facade = AuthenticationFacade(
            settings=settings,
            session_factory=sessionmaker,
            tokens=tokens,
            access_keys=access_keys,
            cache=cache,
            passwords=passwords or Argon2PasswordVerifier(),
            audit=audit,
        )

        audit.start()
        cache.start()
        try:
            yield
        finally:
            await cache.stop()
            cache.close()
            await audit.stop()
            # Dispose the engine to close pools/FDs gracefully.
            await engine.dispose()
            log.info("shutdown")

    app = FastAPI(
        title="Tenant Authorization Service",
        version=__version__,
        docs_url="/docs",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.add_middleware(RequestContextMiddleware)
    register_exception_handlers(app)
    app.include_router(health_router, tags=["health"])
    app.include_router(auth_router)
    app.include_router(access_keys_router)
    app.include_router(directory_router)
    app.include_router(policies_router)
    app.include_router(dev_bootstrap_router)

    return app


# --- Module Notes -----------------------------------------------------------
# This file stays small: app composition lives here; authentication and policy logic
# live in the `auth` and `policy` packages.
