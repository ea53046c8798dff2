"""
tenant_authz.settings

Central configuration model (Pydantic Settings).

Responsibilities:
- Provide strongly-typed, env-driven settings for all layers.
- Hide secrets from repr/logging (JWT signing key).
- Validate security-critical settings once at startup (`ConfigError` is fatal).
- Offer a cached settings instance for dependency injection.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from tenant_authz.errors import ConfigError

DEV_JWT_SECRET = "dev-secret-change-me-dev-secret-change-me"


class Settings(BaseSettings):
    """
    Configuration surface consumed by the identity/permission core:
    - Signing key material and token TTLs
    - Policy cache staleness bound
    - Wildcard matching policy
    """

    model_config = SettingsConfigDict(env_prefix="TENANT_AUTHZ_", case_sensitive=False)

    # Environment controls toggle behavior like auto-init DB tables.
    env: Literal["dev", "test", "prod"] = "dev"
    service_name: str = "tenant-authz"
    log_level: str = "INFO"

    api_host: str = "0.0.0.0"
    api_port: int = 8080

    # Tokens
    jwt_alg: str = "HS256"
    jwt_issuer: str = "tenant-authz"
    jwt_audience: str = "tenant-admin"
    jwt_secret: str = Field(default=DEV_JWT_SECRET, repr=False)
    access_token_ttl_seconds: int = Field(default=2 * 60 * 60, ge=1)
    refresh_token_ttl_seconds: int = Field(default=7 * 24 * 60 * 60, ge=1)

    # Policy cache / store
    policy_refresh_interval_seconds: float = Field(default=5.0, gt=0)
    store_timeout_seconds: float = Field(default=5.0, gt=0)
    wildcard_mode: Literal["exact", "action", "pattern"] = "pattern"

    # Persistence
    database_url: str = "sqlite+aiosqlite:///./tenant_authz.db"

    def validate_security(self) -> None:
        if not self.jwt_secret:
            raise ConfigError("jwt_secret is not configured")
        if not self.jwt_alg.upper().startswith("HS"):
            # Only shared-secret algorithms are wired; asymmetric keys need separate key material.
            raise ConfigError(f"unsupported jwt_alg: {self.jwt_alg}")
        if self.env == "prod":
            if self.jwt_secret == DEV_JWT_SECRET:
                raise ConfigError("jwt_secret must be overridden in prod")
            if len(self.jwt_secret.encode()) < 32:
                raise ConfigError("jwt_secret must be at least 32 bytes in prod")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    # Cache avoids re-parsing env vars for each request dependency.
    return Settings()


# --- Module Notes -----------------------------------------------------------
# Every value here is read-only at runtime; changing TTLs or the signing key requires a
# restart, and already-issued access tokens keep the claims they were signed with.
