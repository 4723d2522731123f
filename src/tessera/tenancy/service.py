"""Tenant lifecycle entry points.

TenantService creates and deletes Tenant/Domain records in the central
database and announces them on the event bus. It never touches tenant
databases: provisioning reacts to TENANT_CREATED / TENANT_DELETED.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Protocol

from tessera.cache.keys import CacheKeys
from tessera.errors import TenancyError, TenantAlreadyExistsError, TenantNotFoundError
from tessera.events.schemas import EventType, TenantEvent
from tessera.tenancy.models import Domain, Tenant, slugify
from tessera.tenancy.resolver import TenantStore

if TYPE_CHECKING:
    from tessera.cache.redis import LookupCache
    from tessera.config import TenancyConfig
    from tessera.events.bus import EventBus

logger = logging.getLogger(__name__)


class ManagedTenantStore(TenantStore, Protocol):
    """TenantStore that can also write tenants and domains."""

    async def find_tenant(self, identifier: str) -> Tenant | None: ...

    async def list_tenants(self) -> list[Tenant]: ...

    async def slug_exists(self, slug: str) -> bool: ...

    async def create_tenant(
        self, tenant: Tenant, domains: list[Domain] | None = None
    ) -> Tenant: ...

    async def delete_tenant(self, tenant_id: str) -> bool: ...

    async def domains_for(self, tenant_id: str) -> list[Domain]: ...


class TenantService:
    """Creates and deletes tenants.

    Args:
        config: Tenancy configuration (database naming, base domain, cache prefix)
        store: Central tenant store
        bus: Event bus lifecycle events are published on
        cache: Lookup cache whose entries for the tenant's domains are dropped
    """

    def __init__(
        self,
        config: TenancyConfig,
        store: ManagedTenantStore,
        bus: EventBus,
        cache: LookupCache | None = None,
    ) -> None:
        self.config = config
        self.store = store
        self.bus = bus
        self.cache = cache

    def database_name_for(self, slug: str) -> str:
        tenant_config = self.config.tenant
        return f"{tenant_config.database_prefix}{slug}{tenant_config.database_suffix}"

    async def create(
        self,
        name: str,
        slug: str | None = None,
        email: str | None = None,
        subdomain: str | None = None,
        data: dict[str, Any] | None = None,
        settings: dict[str, Any] | None = None,
    ) -> tuple[Tenant, Domain]:
        """Create a tenant with a verified primary domain and publish TENANT_CREATED.

        Args:
            name: Display name
            slug: Unique slug (defaults to the slugified name)
            email: Contact address
            subdomain: Subdomain of the primary domain (defaults to the slug)

        Returns:
            The tenant and its primary domain ``{subdomain}.{base_domain}``

        Raises:
            TenantAlreadyExistsError: If the slug is taken
        """
        slug = slug or slugify(name)
        if not slug:
            raise TenancyError(f"Cannot derive a slug from tenant name {name!r}")
        if await self.store.slug_exists(slug):
            raise TenantAlreadyExistsError(slug)

        tenant = Tenant(
            name=name,
            slug=slug,
            email=email,
            database=self.database_name_for(slug),
            data=data or {},
            settings=settings or {},
        )
        full_domain = f"{(subdomain or slug).lower()}.{self.config.subdomain.domain}"
        domain = Domain(
            domain=full_domain,
            tenant_id=tenant.id,
            is_primary=True,
            is_verified=True,
            verified_at=datetime.now(UTC),
            tenant=tenant,
        )

        await self.store.create_tenant(tenant, [domain])
        # A negative lookup may have been cached for this host
        await self._forget(full_domain)
        logger.info("Created tenant %s (%s) on %s", tenant.slug, tenant.id, full_domain)

        await self.bus.publish(TenantEvent(event_type=EventType.TENANT_CREATED, tenant=tenant))
        return tenant, domain

    async def find(self, identifier: str) -> Tenant:
        """Find a tenant by id or slug.

        Raises:
            TenantNotFoundError: If no tenant matches
        """
        tenant = await self.store.find_tenant(identifier)
        if tenant is None:
            raise TenantNotFoundError(identifier)
        return tenant

    async def delete(self, identifier: str, keep_database: bool = False) -> Tenant:
        """Delete a tenant and its domains, then publish TENANT_DELETED.

        Args:
            identifier: Tenant id or slug
            keep_database: Leave the tenant database in place

        Raises:
            TenantNotFoundError: If no tenant matches
        """
        tenant = await self.find(identifier)
        domains = await self.store.domains_for(tenant.id)

        await self.store.delete_tenant(tenant.id)
        for domain in domains:
            await self._forget(domain.domain)
        await self._forget(f"{tenant.slug}.{self.config.subdomain.domain}")
        logger.info("Deleted tenant %s (%s)", tenant.slug, tenant.id)

        await self.bus.publish(
            TenantEvent(
                event_type=EventType.TENANT_DELETED,
                tenant=tenant,
                options={"keep_database": keep_database},
            )
        )
        return tenant

    async def _forget(self, full_domain: str) -> None:
        if self.cache is None or not self.config.cache.enabled:
            return
        await self.cache.forget(CacheKeys.domain(full_domain, self.config.cache.prefix))
