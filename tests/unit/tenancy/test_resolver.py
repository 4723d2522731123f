"""Tests for the domain resolver."""

import dataclasses

import pytest

from tessera.cache.redis import InMemoryLookupCache
from tessera.config import TenancyConfig
from tessera.tenancy.models import Tenant
from tessera.tenancy.resolver import (
    DomainResolver,
    NoTenant,
    NotFound,
    Reserved,
    ResolvedTenant,
    normalize_host,
)


class TestNormalizeHost:
    def test_strips_port_and_case(self) -> None:
        assert normalize_host("Acme.Example.COM:8000") == "acme.example.com"

    def test_strips_trailing_dot(self) -> None:
        assert normalize_host("acme.example.com.") == "acme.example.com"

    def test_ipv6_literal(self) -> None:
        assert normalize_host("[::1]:8000") == "[::1]"


class TestExtractSubdomain:
    @pytest.fixture
    def resolver(self, config: TenancyConfig, store) -> DomainResolver:
        return DomainResolver(config, store)

    def test_subdomain(self, resolver: DomainResolver) -> None:
        assert resolver.extract_subdomain("acme.example.com") == "acme"

    def test_nested_subdomain(self, resolver: DomainResolver) -> None:
        assert resolver.extract_subdomain("eu.acme.example.com") == "eu.acme"

    def test_base_domain_has_no_subdomain(self, resolver: DomainResolver) -> None:
        assert resolver.extract_subdomain("example.com") == ""

    def test_foreign_domain_has_no_subdomain(self, resolver: DomainResolver) -> None:
        """Hosts outside the base domain are not tenant subdomains."""
        assert resolver.extract_subdomain("acme.example.org") == ""
        assert resolver.extract_subdomain("notexample.com") == ""


class TestDomainResolver:
    """Tests for DomainResolver.resolve."""

    @pytest.fixture
    def cache(self) -> InMemoryLookupCache:
        return InMemoryLookupCache()

    @pytest.fixture
    def resolver(self, config: TenancyConfig, store, cache) -> DomainResolver:
        return DomainResolver(config, store, cache)

    async def test_unknown_subdomain_is_not_found(self, resolver: DomainResolver) -> None:
        """acme.example.com without any Domain or Tenant record is NotFound."""
        assert await resolver.resolve("acme.example.com") == NotFound("acme")

    async def test_resolves_by_domain_record(
        self, resolver: DomainResolver, store, tenant: Tenant
    ) -> None:
        """A Domain record for the exact host resolves its tenant."""
        store.add(tenant, "acme.example.com")

        resolution = await resolver.resolve("acme.example.com")

        assert isinstance(resolution, ResolvedTenant)
        assert resolution.tenant.id == tenant.id
        assert resolution.subdomain == "acme"
        assert resolution.domain == "acme.example.com"

    async def test_falls_back_to_slug(
        self, resolver: DomainResolver, store, tenant: Tenant
    ) -> None:
        """Without a Domain record, the tenant whose slug is the subdomain resolves."""
        store.add(tenant)

        resolution = await resolver.resolve("ACME.example.com:443")

        assert isinstance(resolution, ResolvedTenant)
        assert resolution.tenant.slug == "acme"

    async def test_reserved_subdomain(
        self, resolver: DomainResolver, store
    ) -> None:
        """Reserved subdomains never resolve, even when a tenant has that slug."""
        store.add(Tenant(name="WWW", slug="www"), "www.example.com")

        assert await resolver.resolve("www.example.com") == Reserved("www")
        assert store.calls == []

    @pytest.mark.parametrize("host", ["localhost", "localhost:8000", "app.test"])
    async def test_central_domain(self, resolver: DomainResolver, store, host: str) -> None:
        """Central domains carry no tenant context and never hit the store."""
        assert await resolver.resolve(host) == NoTenant()
        assert store.calls == []

    @pytest.mark.parametrize("host", ["example.com", "acme.example.org", ""])
    async def test_no_subdomain(self, resolver: DomainResolver, host: str) -> None:
        assert await resolver.resolve(host) == NoTenant()

    async def test_cached_lookup_skips_store(
        self, resolver: DomainResolver, store, tenant: Tenant
    ) -> None:
        """A warm cache answers without touching the central store."""
        store.add(tenant, "acme.example.com")

        first = await resolver.resolve("acme.example.com")
        calls = len(store.calls)
        second = await resolver.resolve("acme.example.com")

        assert calls > 0
        assert len(store.calls) == calls
        assert isinstance(first, ResolvedTenant)
        assert isinstance(second, ResolvedTenant)
        assert second.tenant == first.tenant

    async def test_negative_lookup_is_cached(
        self, resolver: DomainResolver, store, cache: InMemoryLookupCache
    ) -> None:
        """Unknown hosts are cached too."""
        await resolver.resolve("ghost.example.com")
        calls = len(store.calls)

        assert await resolver.resolve("ghost.example.com") == NotFound("ghost")
        assert len(store.calls) == calls
        assert await cache.get("test_domain_ghost.example.com") is not None

    async def test_cache_disabled(
        self, config: TenancyConfig, store, cache: InMemoryLookupCache, tenant: Tenant
    ) -> None:
        """With caching disabled, every resolution queries the store."""
        config = dataclasses.replace(
            config, cache=dataclasses.replace(config.cache, enabled=False)
        )
        resolver = DomainResolver(config, store, cache)
        store.add(tenant, "acme.example.com")

        await resolver.resolve("acme.example.com")
        calls = len(store.calls)
        await resolver.resolve("acme.example.com")

        assert len(store.calls) == 2 * calls
        assert len(cache) == 0

    async def test_store_errors_propagate(self, config: TenancyConfig) -> None:
        """Central database failures are not turned into NotFound."""

        class BrokenStore:
            async def find_domain_by_host(self, host: str):
                raise ConnectionError("central database unavailable")

            async def find_tenant_by_slug(self, slug: str):
                return None

            async def find_tenant_by_id(self, tenant_id: str):
                return None

        resolver = DomainResolver(config, BrokenStore(), InMemoryLookupCache())

        with pytest.raises(ConnectionError):
            await resolver.resolve("acme.example.com")
