"""
tenant_authz.api

HTTP surface for the identity and permission core.

Responsibilities:
- FastAPI app factory and router modules.
- API-layer dependency wiring and request/response models.
"""


# --- Module Notes -----------------------------------------------------------
# The API layer stays thin: request validation + auth + delegation to the core services.
