"""
tenant_authz.api.__main__

Entrypoint for running the FastAPI application via `python -m tenant_authz.api`
(also installed as the `tenant-authz` console script).
"""

from __future__ import annotations

import uvicorn

from tenant_authz.api.app import create_app
from tenant_authz.errors import ConfigError
from tenant_authz.observability.logging import get_logger
from tenant_authz.settings import get_settings

log = get_logger(__name__)


def main() -> None:
    settings = get_settings()
    try:
        app = create_app(settings=settings)
    except ConfigError as e:
        # Misconfigured signing keys must stop the process before it binds a port.
        log.error("startup_refused", error=str(e))
        raise SystemExit(2) from e

    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_config=None,  # structlog owns formatting
    )


if __name__ == "__main__":
    main()
