"""Multi-database tenancy for Tessera.

Provides:
- Tenant / Domain: records stored in the central database
- TenancyMode: single (shared) or multi (database per tenant)
- TenancyContext: the tenant connection active in the current request or job

The resolver, connection switcher and middleware live in submodules
(tessera.tenancy.resolver, .database, .middleware) and are imported from
there; they depend on tessera.config, which itself imports this package.

Example:
    from tessera.tenancy import get_current_tenant

    tenant = get_current_tenant()
"""

from tessera.tenancy.context import (
    TenancyContext,
    clear_tenancy_context,
    get_current_tenant,
    get_tenancy_context,
    require_tenant,
    set_tenancy_context,
)
from tessera.tenancy.mode import TenancyMode
from tessera.tenancy.models import Domain, Tenant, slugify

__all__ = [
    # Records
    "Tenant",
    "Domain",
    "slugify",
    "TenancyMode",
    # Context
    "TenancyContext",
    "get_tenancy_context",
    "get_current_tenant",
    "require_tenant",
    "set_tenancy_context",
    "clear_tenancy_context",
]
