"""
tenant_authz.db.models

Persistence schema for the credential and policy stores.

Responsibilities:
- Domain / Role / User: the tenant directory facts the core validates against.
- PolicyGrant ("p" rules) and PolicyInheritance ("g" rules), scoped by domain.
- PolicyVersion: per-domain write counter (staleness detection + writer serialization).
- RefreshTokenRecord / AccessKeyRecord: durable credential state.
"""

from __future__ import annotations

import enum
import uuid
from datetime import UTC, datetime

from sqlalchemy import Boolean, Enum, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from tenant_authz.db.base import Base


def utcnow() -> datetime:
    # Naive UTC everywhere; SQLite drops tz info on the way back anyway.
    return datetime.now(UTC).replace(tzinfo=None)


def _new_id() -> str:
    return uuid.uuid4().hex


class EntityStatus(enum.StrEnum):
    enabled = "ENABLED"
    disabled = "DISABLED"


class AccessKeyStatus(enum.StrEnum):
    active = "ACTIVE"
    revoked = "REVOKED"


class Domain(Base):
    __tablename__ = "domains"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    display_name: Mapped[str] = mapped_column(String(256), nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)


class Role(Base):
    __tablename__ = "roles"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    domain_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("domains.id"), nullable=False, index=True
    )
    code: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)

    __table_args__ = (UniqueConstraint("domain_id", "code", name="uq_roles_domain_code"),)


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    domain_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("domains.id"), nullable=False, index=True
    )
    username: Mapped[str] = mapped_column(String(128), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(256), nullable=False)
    status: Mapped[EntityStatus] = mapped_column(
        Enum(EntityStatus), nullable=False, default=EntityStatus.enabled
    )
    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)

    __table_args__ = (UniqueConstraint("domain_id", "username", name="uq_users_domain_username"),)


class PolicyGrant(Base):
    __tablename__ = "policy_grants"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    domain_id: Mapped[str] = mapped_column(String(64), ForeignKey("domains.id"), nullable=False)
    role_id: Mapped[str] = mapped_column(String(64), nullable=False)
    object: Mapped[str] = mapped_column(String(512), nullable=False)
    action: Mapped[str] = mapped_column(String(32), nullable=False)

    __table_args__ = (
        UniqueConstraint("domain_id", "role_id", "object", "action", name="uq_policy_grants_rule"),
        Index("ix_policy_grants_domain_role", "domain_id", "role_id"),
    )


class PolicyInheritance(Base):
    __tablename__ = "policy_inheritance"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    domain_id: Mapped[str] = mapped_column(String(64), ForeignKey("domains.id"), nullable=False)
    # A user id or a role id; the parent is always a role.
    child_id: Mapped[str] = mapped_column(String(64), nullable=False)
    parent_role_id: Mapped[str] = mapped_column(String(64), nullable=False)

    __table_args__ = (
        UniqueConstraint("domain_id", "child_id", "parent_role_id", name="uq_policy_inheritance_edge"),
        Index("ix_policy_inheritance_domain_child", "domain_id", "child_id"),
    )


class PolicyVersion(Base):
    __tablename__ = "policy_versions"

    domain_id: Mapped[str] = mapped_column(String(64), ForeignKey("domains.id"), primary_key=True)
    version: Mapped[int] = mapped_column(nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)


class RefreshTokenRecord(Base):
    __tablename__ = "refresh_tokens"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    subject_id: Mapped[str] = mapped_column(String(64), nullable=False)
    domain_id: Mapped[str] = mapped_column(String(64), nullable=False)
    issued_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    expires_at: Mapped[datetime] = mapped_column(nullable=False, index=True)
    revoked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    revoked_at: Mapped[datetime | None] = mapped_column(nullable=True)
    # Successor issued by rotation; lets an operator trace a stolen token's lineage.
    replaced_by: Mapped[str | None] = mapped_column(String(64), nullable=True)

    __table_args__ = (Index("ix_refresh_tokens_subject_domain", "subject_id", "domain_id"),)


class AccessKeyRecord(Base):
    __tablename__ = "access_keys"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    owner_subject_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    domain_id: Mapped[str] = mapped_column(String(64), nullable=False)
    secret_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str | None] = mapped_column(String(256), nullable=True)
    status: Mapped[AccessKeyStatus] = mapped_column(
        Enum(AccessKeyStatus), nullable=False, default=AccessKeyStatus.active
    )
    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    expires_at: Mapped[datetime | None] = mapped_column(nullable=True)


# --- Module Notes -----------------------------------------------------------
# Policy rows carry plain string ids instead of foreign keys to `roles`/`users`: the
# child side of an inheritance edge may be either, and the store validates role
# membership explicitly inside the write transaction.
