"""
tenant_authz.api.routers

FastAPI routers grouped by resource.
"""
