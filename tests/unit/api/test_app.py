"""Tests for the FastAPI application."""

import pytest
from fastapi.testclient import TestClient

from tessera.api.app import create_app
from tessera.cache.redis import InMemoryLookupCache
from tessera.config import TenancyConfig
from tessera.runtime import TenancyRuntime, create_runtime
from tessera.tenancy.models import Tenant


@pytest.fixture
def runtime(config: TenancyConfig, store, tenant: Tenant) -> TenancyRuntime:
    store.add(tenant, "acme.example.com")
    return create_runtime(config, store=store, cache=InMemoryLookupCache())


@pytest.fixture
def client(runtime: TenancyRuntime) -> TestClient:
    return TestClient(create_app(runtime, use_lifespan=False))


class TestApp:
    """Tests for the application endpoints."""

    def test_health(self, client: TestClient) -> None:
        response = client.get("/health", headers={"host": "ghost.example.com"})

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "mode": "multi"}

    def test_tenant_endpoint(self, client: TestClient, tenant: Tenant) -> None:
        response = client.get("/tenant", headers={"host": "acme.example.com"})

        assert response.status_code == 200
        body = response.json()
        assert body["tenant"]["id"] == tenant.id
        assert body["connection"]["tenant_slug"] == "acme"
        assert body["connection"]["database"].endswith("tenant_acme.sqlite")

    def test_tenant_endpoint_on_central_domain(self, client: TestClient) -> None:
        response = client.get("/tenant", headers={"host": "localhost"})

        assert response.status_code == 404
        assert response.json() == {"error": "No tenant for this host"}

    def test_unknown_tenant(self, client: TestClient) -> None:
        response = client.get("/tenant", headers={"host": "ghost.example.com"})

        assert response.status_code == 404
        assert response.json() == {"error": "Tenant not found for subdomain: ghost"}

    def test_request_id_echoed(self, client: TestClient) -> None:
        response = client.get(
            "/health", headers={"host": "localhost", "x-request-id": "req-123"}
        )

        assert response.headers["x-request-id"] == "req-123"

    def test_request_id_generated(self, client: TestClient) -> None:
        response = client.get("/health", headers={"host": "localhost"})

        assert response.headers["x-request-id"]


class TestRuntime:
    async def test_created_tenant_is_provisioned(
        self, config: TenancyConfig, store
    ) -> None:
        """The runtime wires the state machine to the service's events."""
        runtime = create_runtime(
            config.with_provisioning(auto_migrate=False),
            store=store,
            cache=InMemoryLookupCache(),
        )

        tenant, _ = await runtime.service.create("Globex")

        assert await runtime.manager.database_exists(tenant.database_name())
        await runtime.close()
