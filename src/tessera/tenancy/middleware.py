"""Tenant resolution middleware for FastAPI/Starlette.

TenancyBySubdomainMiddleware resolves the tenant from the request host and
activates its database connection for the duration of the request:
- Central domain: passes through without tenant context
- No subdomain: redirect to the central path
- Reserved subdomain / unknown tenant: 404
- Tenant found: connection initialized, always ended after the response

Example:
    from fastapi import FastAPI
    from tessera.tenancy.middleware import TenancyBySubdomainMiddleware

    app = FastAPI()
    app.add_middleware(
        TenancyBySubdomainMiddleware, resolver=resolver, manager=manager, config=config
    )
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import RedirectResponse, Response

from tessera.tenancy.resolver import NoTenant, NotFound, Reserved, normalize_host

if TYPE_CHECKING:
    from tessera.config import TenancyConfig
    from tessera.tenancy.database import MultiDatabaseManager
    from tessera.tenancy.resolver import DomainResolver

logger = logging.getLogger(__name__)

DEFAULT_EXCLUDED_PATHS = ("/health", "/ready", "/docs", "/openapi.json")


def _error(message: str, status_code: int = 404) -> Response:
    return Response(
        content=json.dumps({"error": message}),
        status_code=status_code,
        media_type="application/json",
    )


def _host(request: Request) -> str:
    return normalize_host(request.headers.get("host") or request.url.hostname or "")


class TenancyBySubdomainMiddleware(BaseHTTPMiddleware):
    """Initializes tenancy from the request subdomain.

    Does nothing unless the tenancy mode is multi. The tenant is exposed as
    ``request.state.tenant`` and through tessera.tenancy.get_current_tenant().
    """

    def __init__(
        self,
        app: Any,
        resolver: DomainResolver,
        manager: MultiDatabaseManager,
        config: TenancyConfig,
        excluded_paths: list[str] | None = None,
    ) -> None:
        """Initialize the middleware.

        Args:
            app: The ASGI application
            resolver: Domain resolver
            manager: Connection switcher
            config: Tenancy configuration
            excluded_paths: Paths served without tenant resolution
        """
        super().__init__(app)
        self.resolver = resolver
        self.manager = manager
        self.config = config
        self.excluded_paths = list(excluded_paths or DEFAULT_EXCLUDED_PATHS)

    def _is_excluded(self, path: str) -> bool:
        return any(path.startswith(excluded) for excluded in self.excluded_paths)

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Any],
    ) -> Response:
        """Resolve the tenant, run the request in its context, then end tenancy."""
        if not self.config.mode.is_multi_database() or self._is_excluded(request.url.path):
            return await call_next(request)

        host = _host(request)
        if self.config.is_central_domain(host):
            return await call_next(request)

        resolution = await self.resolver.resolve(host)

        if isinstance(resolution, NoTenant):
            central_path = self.config.central.path
            if request.url.path == central_path:
                return await call_next(request)
            return RedirectResponse(central_path, status_code=302)

        if isinstance(resolution, Reserved):
            logger.debug("Reserved subdomain requested: %s", resolution.subdomain)
            return _error(f"The subdomain '{resolution.subdomain}' is reserved.")

        if isinstance(resolution, NotFound):
            logger.debug("Unknown tenant subdomain: %s", resolution.subdomain)
            return _error(f"Tenant not found for subdomain: {resolution.subdomain}")

        try:
            await self.manager.initialize(resolution.tenant)
            request.state.tenant = resolution.tenant
            return await call_next(request)
        finally:
            await self.manager.end()


class PreventAccessFromCentralDomainsMiddleware(BaseHTTPMiddleware):
    """Keeps tenant-only routes off central domains in multi mode.

    Requests on a central host are redirected to the central path unless they
    already target it (or an excluded path).
    """

    def __init__(
        self,
        app: Any,
        config: TenancyConfig,
        excluded_paths: list[str] | None = None,
    ) -> None:
        super().__init__(app)
        self.config = config
        self.excluded_paths = list(excluded_paths or DEFAULT_EXCLUDED_PATHS)

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Any],
    ) -> Response:
        path = request.url.path
        if (
            not self.config.mode.is_multi_database()
            or path == self.config.central.path
            or any(path.startswith(excluded) for excluded in self.excluded_paths)
        ):
            return await call_next(request)

        if self.config.is_central_domain(_host(request)):
            return RedirectResponse(self.config.central.path, status_code=302)

        return await call_next(request)
