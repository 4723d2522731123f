"""Global pytest configuration and fixtures.

Provides an in-memory tenant store, a multi-database configuration backed by
SQLite files under tmp_path, and an event recorder.
"""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from tessera.config import (
    CacheConfig,
    CentralConfig,
    ProvisioningConfig,
    SubdomainConfig,
    TenancyConfig,
    TenantDatabaseConfig,
)
from tessera.events.bus import LocalEventBus
from tessera.events.schemas import EventType, TenantEvent
from tessera.tenancy.context import clear_tenancy_context
from tessera.tenancy.mode import TenancyMode
from tessera.tenancy.models import Domain, Tenant


class FakeTenantStore:
    """In-memory ManagedTenantStore that records every lookup."""

    def __init__(self) -> None:
        self.tenants: dict[str, Tenant] = {}
        self.domains: dict[str, Domain] = {}
        self.calls: list[tuple[str, str]] = []

    def add(self, tenant: Tenant, *hosts: str) -> Tenant:
        self.tenants[tenant.id] = tenant
        for host in hosts:
            self.domains[host] = Domain(domain=host, tenant_id=tenant.id, is_primary=True)
        return tenant

    async def find_domain_by_host(self, host: str) -> Domain | None:
        self.calls.append(("domain", host))
        return self.domains.get(host)

    async def find_tenant_by_slug(self, slug: str) -> Tenant | None:
        self.calls.append(("slug", slug))
        return next((t for t in self.tenants.values() if t.slug == slug), None)

    async def find_tenant_by_id(self, tenant_id: str) -> Tenant | None:
        self.calls.append(("id", tenant_id))
        return self.tenants.get(tenant_id)

    async def find_tenant(self, identifier: str) -> Tenant | None:
        return await self.find_tenant_by_id(identifier) or await self.find_tenant_by_slug(
            identifier
        )

    async def list_tenants(self) -> list[Tenant]:
        return list(self.tenants.values())

    async def slug_exists(self, slug: str) -> bool:
        return any(t.slug == slug for t in self.tenants.values())

    async def create_tenant(self, tenant: Tenant, domains: list[Domain] | None = None) -> Tenant:
        self.tenants[tenant.id] = tenant
        for domain in domains or []:
            self.domains[domain.domain] = domain
        return tenant

    async def add_domain(self, domain: Domain) -> Domain:
        self.domains[domain.domain] = domain
        return domain

    async def delete_tenant(self, tenant_id: str) -> bool:
        self.domains = {h: d for h, d in self.domains.items() if d.tenant_id != tenant_id}
        return self.tenants.pop(tenant_id, None) is not None

    async def domains_for(self, tenant_id: str) -> list[Domain]:
        return [d for d in self.domains.values() if d.tenant_id == tenant_id]


class EventRecorder:
    """Collects every event published on a bus."""

    def __init__(self) -> None:
        self.events: list[TenantEvent] = []

    async def __call__(self, event: TenantEvent) -> None:
        self.events.append(event)

    @property
    def types(self) -> list[EventType]:
        return [event.event_type for event in self.events]


@pytest.fixture(autouse=True)
def _reset_tenancy_context() -> Iterator[None]:
    """Start and finish every test in the central context."""
    clear_tenancy_context()
    yield
    clear_tenancy_context()


@pytest.fixture
def config(tmp_path: Path) -> TenancyConfig:
    """Multi-database configuration on SQLite files under tmp_path."""
    return TenancyConfig(
        mode=TenancyMode.MULTI,
        central=CentralConfig(
            database_url=f"sqlite+aiosqlite:///{tmp_path / 'central.sqlite'}",
            domains=("localhost", "app.test"),
            path="/",
        ),
        tenant=TenantDatabaseConfig(
            database_prefix="tenant_",
            sqlite_directory=str(tmp_path / "tenants"),
            migrations_path=str(tmp_path / "no-migrations"),
        ),
        subdomain=SubdomainConfig(domain="example.com", reserved=("www", "api")),
        provisioning=ProvisioningConfig(),
        cache=CacheConfig(enabled=True, ttl=60, prefix="test_"),
    )


@pytest.fixture
def store() -> FakeTenantStore:
    return FakeTenantStore()


@pytest.fixture
def tenant() -> Tenant:
    return Tenant(name="Acme Corp", slug="acme", database="tenant_acme")


@pytest.fixture
def bus() -> LocalEventBus:
    return LocalEventBus()


@pytest.fixture
def recorder(bus: LocalEventBus) -> EventRecorder:
    """Recorder subscribed to every event on the bus fixture."""
    events = EventRecorder()
    bus.subscribe_all(events)
    return events
