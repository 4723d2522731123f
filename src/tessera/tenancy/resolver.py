"""Domain resolver: map an inbound host to a tenant.

Resolution order:
1. Central domains never carry tenant context (NoTenant)
2. The subdomain is the host minus the base domain (NoTenant when empty)
3. Reserved subdomains never resolve, even if a tenant has that slug
4. Domain record with the exact host, then tenant whose slug is the subdomain
5. Otherwise NotFound

Lookups go through the LookupCache (negative results included) so a warm
cache answers without touching the central database. Storage and cache
errors propagate to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

import orjson

from tessera.cache.keys import CacheKeys
from tessera.tenancy.models import Domain, Tenant

if TYPE_CHECKING:
    from tessera.cache.redis import LookupCache
    from tessera.config import TenancyConfig

logger = logging.getLogger(__name__)


class TenantStore(Protocol):
    """Tenant/domain queries against the central database."""

    async def find_domain_by_host(self, host: str) -> Domain | None: ...

    async def find_tenant_by_slug(self, slug: str) -> Tenant | None: ...

    async def find_tenant_by_id(self, tenant_id: str) -> Tenant | None: ...


@dataclass(frozen=True, slots=True)
class ResolvedTenant:
    tenant: Tenant
    subdomain: str
    domain: str


@dataclass(frozen=True, slots=True)
class NoTenant:
    """Central host, or no subdomain beneath the base domain."""


@dataclass(frozen=True, slots=True)
class Reserved:
    subdomain: str


@dataclass(frozen=True, slots=True)
class NotFound:
    subdomain: str


Resolution = ResolvedTenant | NoTenant | Reserved | NotFound


def normalize_host(host: str) -> str:
    """Lower-case host without port or trailing dot.

    "Acme.Example.com:8000" -> "acme.example.com"
    """
    host = host.strip().lower()
    if host.startswith("["):
        # IPv6 literal, e.g. [::1]:8000
        return host.split("]", 1)[0] + "]"
    return host.rsplit(":", 1)[0].rstrip(".") if ":" in host else host.rstrip(".")


class DomainResolver:
    """Resolves tenants from request hosts.

    Args:
        config: Tenancy configuration (base domain, reserved and central lists, cache)
        store: Central tenant store
        cache: Lookup cache; None disables caching
    """

    def __init__(
        self,
        config: TenancyConfig,
        store: TenantStore,
        cache: LookupCache | None = None,
    ) -> None:
        self.config = config
        self.store = store
        self.cache = cache if config.cache.enabled else None

    @property
    def base_domain(self) -> str:
        return self.config.subdomain.domain

    def extract_subdomain(self, host: str) -> str:
        """Subdomain of host relative to the base domain, "" when there is none."""
        host = normalize_host(host)
        base = self.base_domain
        if host == base or not host.endswith(f".{base}"):
            return ""
        return host[: -len(base)].rstrip(".")

    async def resolve(self, host: str) -> Resolution:
        host = normalize_host(host)
        if not host or self.config.is_central_domain(host):
            return NoTenant()

        subdomain = self.extract_subdomain(host)
        if not subdomain:
            return NoTenant()

        if self.config.is_reserved_subdomain(subdomain):
            return Reserved(subdomain)

        full_domain = f"{subdomain}.{self.base_domain}"
        tenant = await self._lookup(full_domain, subdomain)
        if tenant is None:
            return NotFound(subdomain)

        return ResolvedTenant(tenant=tenant, subdomain=subdomain, domain=full_domain)

    async def _lookup(self, full_domain: str, subdomain: str) -> Tenant | None:
        if self.cache is None:
            return await self._find(full_domain, subdomain)

        async def produce() -> bytes:
            tenant = await self._find(full_domain, subdomain)
            return orjson.dumps({"tenant": tenant.to_dict() if tenant else None})

        key = CacheKeys.domain(full_domain, self.config.cache.prefix)
        cached = orjson.loads(await self.cache.remember(key, self.config.cache.ttl, produce))
        data = cached.get("tenant")
        return Tenant.from_dict(data) if data else None

    async def _find(self, full_domain: str, subdomain: str) -> Tenant | None:
        domain = await self.store.find_domain_by_host(full_domain)
        if domain is not None and domain.tenant is not None:
            return domain.tenant
        if domain is not None:
            tenant = await self.store.find_tenant_by_id(domain.tenant_id)
            if tenant is not None:
                return tenant

        tenant = await self.store.find_tenant_by_slug(subdomain)
        if tenant is None:
            logger.debug("No tenant for %s", full_domain)
        return tenant
