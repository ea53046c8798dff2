"""
tenant_authz.observability.middleware

HTTP middleware for request-scoped logging context.

Responsibilities:
- Generate/propagate request IDs.
- Bind request metadata (including the target tenant domain) into structlog contextvars.
"""

from __future__ import annotations

import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "x-request-id"
DOMAIN_HEADER = "x-domain-id"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    - Ensures every request has a request id (exposed on `request.state.request_id`)
    - Binds request-scoped contextvars for structured logs and audit events
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id

        structlog.contextvars.clear_contextvars()
        context = {
            "request_id": request_id,
            "path": request.url.path,
            "method": request.method,
        }
        domain = request.headers.get(DOMAIN_HEADER)
        if domain:
            context["domain"] = domain
        if request.client is not None:
            context["client_ip"] = request.client.host
        structlog.contextvars.bind_contextvars(**context)
        try:
            response: Response = await call_next(request)
        finally:
            # Avoid leaking context across requests under async concurrency.
            structlog.contextvars.clear_contextvars()

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
