"""FastAPI application factory for Tessera.

Creates the application with:
- Tenant resolution by subdomain (multi-database mode)
- Request correlation IDs for logs
- /health and /tenant endpoints
- Lifecycle management for database and Redis connections
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from tessera.api.middleware import RequestIdMiddleware
from tessera.cache.redis import close_redis
from tessera.config import settings
from tessera.observability.logging import configure_logging
from tessera.persistence.db import close_db, init_db
from tessera.runtime import TenancyRuntime, create_runtime
from tessera.tenancy.context import get_tenancy_context
from tessera.tenancy.middleware import TenancyBySubdomainMiddleware

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifecycle.

    On startup:
    - Configure structured logging
    - Create the central tables if missing

    On shutdown:
    - Dispose tenant engines
    - Close Redis and central database connections
    """
    configure_logging(json_format=settings.log_json, level=settings.log_level)

    logger.info("Starting Tessera (%s)", settings.env)
    await init_db()
    logger.info("Tessera startup complete")

    yield

    logger.info("Shutting down Tessera")
    runtime: TenancyRuntime = app.state.runtime
    await runtime.close()
    await close_redis()
    await close_db()
    logger.info("Tessera shutdown complete")


def create_app(runtime: TenancyRuntime | None = None, use_lifespan: bool = True) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        runtime: Tenancy components (built from settings when omitted)
        use_lifespan: Run the startup/shutdown hooks (disable in tests)
    """
    runtime = runtime or create_runtime()

    app = FastAPI(
        title="Tessera",
        description="Multi-database tenant resolution and provisioning",
        version="0.1.0",
        lifespan=lifespan if use_lifespan else None,
    )
    app.state.runtime = runtime

    # Added last = outermost: the request ID is set before tenant resolution logs
    app.add_middleware(
        TenancyBySubdomainMiddleware,
        resolver=runtime.resolver,
        manager=runtime.manager,
        config=runtime.config,
    )
    app.add_middleware(RequestIdMiddleware)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "mode": runtime.config.mode.value}

    @app.get("/tenant", response_model=None)
    async def current_tenant() -> dict[str, Any] | JSONResponse:
        ctx = get_tenancy_context()
        if ctx is None:
            return JSONResponse({"error": "No tenant for this host"}, status_code=404)
        return {"tenant": ctx.tenant.to_dict(), "connection": ctx.to_dict()}

    return app
