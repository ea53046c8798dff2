"""
tenant_authz.db

Persistence package (SQLAlchemy async).

Responsibilities:
- Provide ORM models for the credential and policy stores, engine/session setup,
  and repositories.
"""


# --- Module Notes -----------------------------------------------------------
# Users and roles are create-only here; editing or deleting them belongs to the admin
# service that embeds this core.
