"""
tenant_authz.auth

Authentication package.

Responsibilities:
- Token service (JWT access tokens, rotating refresh tokens).
- Access key authenticator (static machine credentials).
- Authentication façade and FastAPI dependencies (Principal + permission checks).
"""


# --- Module Notes -----------------------------------------------------------
# Nothing in this package makes authorization decisions; `policy.engine` does.
