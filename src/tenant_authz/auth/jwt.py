"""
tenant_authz.auth.jwt

JWT signing and validation helpers.

Responsibilities:
- Sign access and refresh tokens with a fixed claim layout (iss/aud/sub/domain/typ/jti/iat/nbf/exp).
- Decode and validate with strict claim requirements, mapping PyJWT failures onto
  `TokenExpired` / `TokenInvalid`.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, Literal

import jwt
from jwt import ExpiredSignatureError, InvalidTokenError

from tenant_authz.errors import ConfigError, TokenExpired, TokenInvalid
from tenant_authz.settings import Settings

TokenKind = Literal["access", "refresh"]


@dataclass(frozen=True, slots=True)
class JwtConfig:
    alg: str
    issuer: str
    audience: str
    secret: str

    @classmethod
    def from_settings(cls, settings: Settings) -> JwtConfig:
        return cls(
            alg=settings.jwt_alg,
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
            secret=settings.jwt_secret,
        )


@dataclass(frozen=True, slots=True)
class SignedToken:
    raw: str
    jti: str
    issued_at: datetime
    expires_at: datetime


def issue_token(
    *,
    cfg: JwtConfig,
    kind: TokenKind,
    subject: str,
    domain: str,
    ttl: timedelta,
    jti: str | None = None,
    roles: list[str] | None = None,
    now: datetime | None = None,
) -> SignedToken:
    if not cfg.secret:
        raise ConfigError("signing key unavailable")

    issued = (now or datetime.now(tz=UTC)).replace(microsecond=0)
    expires = issued + ttl
    token_id = jti or uuid.uuid4().hex
    payload: dict[str, Any] = {
        "iss": cfg.issuer,
        "aud": cfg.audience,
        "sub": subject,
        "domain": domain,
        "typ": kind,
        "jti": token_id,
        "iat": int(issued.timestamp()),
        "nbf": int(issued.timestamp()),
        "exp": int(expires.timestamp()),
    }
    if roles is not None:
        payload["roles"] = roles
    try:
        raw = jwt.encode(payload, cfg.secret, algorithm=cfg.alg)
    except (NotImplementedError, TypeError, ValueError) as e:
        raise ConfigError(f"cannot sign with {cfg.alg}: {e}") from e
    return SignedToken(
        raw=raw,
        jti=token_id,
        issued_at=issued.replace(tzinfo=None),
        expires_at=expires.replace(tzinfo=None),
    )


def decode_and_validate(
    *, cfg: JwtConfig, token: str, kind: TokenKind, verify_exp: bool = True
) -> dict[str, Any]:
    try:
        payload = jwt.decode(
            token,
            cfg.secret,
            algorithms=[cfg.alg],
            issuer=cfg.issuer,
            audience=cfg.audience,
            options={
                "require": ["exp", "iat", "iss", "aud", "sub", "jti"],
                "verify_exp": verify_exp,
            },
        )
    except ExpiredSignatureError as e:
        raise TokenExpired("token expired") from e
    except InvalidTokenError as e:
        raise TokenInvalid(str(e)) from e

    # A refresh token must never pass as an access token (or the reverse).
    if payload.get("typ") != kind:
        raise TokenInvalid(f"expected {kind} token")
    if not payload.get("sub") or not payload.get("domain"):
        raise TokenInvalid("missing subject or domain claim")
    return payload


# --- Module Notes -----------------------------------------------------------
# Timestamps are truncated to whole seconds on issue so the returned `SignedToken`
# matches the `iat`/`exp` claims exactly.
