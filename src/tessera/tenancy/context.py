"""Tenancy context management using ContextVar.

Holds the tenant and tenant database connection for the current execution
context (one request or one job):
- TenancyContext: the active tenant plus its engine and URL
- get_current_tenant: the active Tenant or None
- require_tenant: the active Tenant, raising when none is active

Each asyncio task gets its own copy of the context, so concurrent requests
never observe one another's tenant. The value is written only by
MultiDatabaseManager.initialize()/end().

Example:
    from tessera.tenancy.context import get_current_tenant

    tenant = get_current_tenant()
    if tenant is not None:
        logger.info("Serving %s", tenant.slug)
"""

from __future__ import annotations

from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from sqlalchemy.engine import URL
    from sqlalchemy.ext.asyncio import AsyncEngine

    from tessera.tenancy.models import Tenant


@dataclass
class TenancyContext:
    """Tenant connection active in the current execution context.

    Attributes:
        tenant: The resolved tenant
        url: SQLAlchemy URL of the tenant database
        engine: Async engine bound to the tenant database
        activated_at: When the connection was switched to this tenant
    """

    tenant: Tenant
    url: URL
    engine: AsyncEngine
    activated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def tenant_id(self) -> str:
        return self.tenant.id

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization (password hidden)."""
        return {
            "tenant_id": self.tenant.id,
            "tenant_slug": self.tenant.slug,
            "database": self.url.database,
            "url": self.url.render_as_string(hide_password=True),
            "activated_at": self.activated_at.isoformat(),
        }


_tenancy_context: ContextVar[TenancyContext | None] = ContextVar(
    "tenancy_context",
    default=None,
)


def get_tenancy_context() -> TenancyContext | None:
    """Get the current tenancy context, or None in the central context."""
    return _tenancy_context.get()


def get_current_tenant() -> Tenant | None:
    """Get the current tenant, or None in the central context."""
    ctx = _tenancy_context.get()
    if ctx is None:
        return None
    return ctx.tenant


def require_tenant() -> Tenant:
    """Get the current tenant, raising if tenancy is not initialized.

    Raises:
        RuntimeError: If no tenant is active
    """
    ctx = _tenancy_context.get()
    if ctx is None:
        raise RuntimeError(
            "No tenant context set. Ensure TenancyMiddleware is active or use manager.scope()."
        )
    return ctx.tenant


def set_tenancy_context(ctx: TenancyContext) -> None:
    _tenancy_context.set(ctx)


def clear_tenancy_context() -> None:
    """Return the current execution context to the central (no tenant) state."""
    _tenancy_context.set(None)
