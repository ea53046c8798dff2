"""
tenant_authz.observability

Observability package.

Responsibilities:
- Structured logging configuration.
- Request context propagation (request id, tenant domain) for log enrichment.
"""
