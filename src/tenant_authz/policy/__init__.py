"""
tenant_authz.policy

Domain-scoped RBAC: persisted policy store, in-memory policy cache, enforcement engine.

Responsibilities:
- Persist grants ("p") and inheritance edges ("g") per domain with change notification.
- Materialize effective permissions per (domain, subject) for low-latency checks.
- Answer (principal, domain, object, action) queries, deny by default.
"""
