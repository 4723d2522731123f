"""Tests for subdomain tenancy middleware."""

import dataclasses
from typing import Any

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from tessera.config import Settings, TenancyConfig
from tessera.tenancy.context import get_current_tenant
from tessera.tenancy.database import MultiDatabaseManager
from tessera.tenancy.middleware import (
    PreventAccessFromCentralDomainsMiddleware,
    TenancyBySubdomainMiddleware,
)
from tessera.tenancy.mode import TenancyMode
from tessera.tenancy.models import Tenant
from tessera.tenancy.resolver import DomainResolver


def _build_app(config: TenancyConfig, store, manager: MultiDatabaseManager) -> FastAPI:
    app = FastAPI()
    app.add_middleware(
        TenancyBySubdomainMiddleware,
        resolver=DomainResolver(config, store),
        manager=manager,
        config=config,
    )

    @app.get("/")
    async def home() -> dict[str, Any]:
        current = get_current_tenant()
        return {"tenant": current.slug if current else None}

    @app.get("/dashboard")
    async def dashboard(request: Request) -> dict[str, Any]:
        return {
            "tenant": get_current_tenant().slug,
            "state": request.state.tenant.slug,
            "database": manager.connection().url.database,
        }

    @app.get("/pricing")
    async def pricing() -> dict[str, Any]:
        current = get_current_tenant()
        return {"tenant": current.slug if current else None}

    @app.get("/fail")
    async def fail() -> None:
        raise RuntimeError("handler failed")

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


class TestTenancyBySubdomainMiddleware:
    """Tests for TenancyBySubdomainMiddleware."""

    @pytest.fixture
    def manager(self, config: TenancyConfig) -> MultiDatabaseManager:
        return MultiDatabaseManager(config)

    @pytest.fixture
    def client(self, config: TenancyConfig, store, manager, tenant: Tenant) -> TestClient:
        store.add(tenant, "acme.example.com")
        return TestClient(_build_app(config, store, manager), raise_server_exceptions=False)

    def test_tenant_request(self, client: TestClient) -> None:
        """A tenant subdomain runs the request on the tenant connection."""
        response = client.get("/dashboard", headers={"host": "acme.example.com"})

        assert response.status_code == 200
        body = response.json()
        assert body["tenant"] == "acme"
        assert body["state"] == "acme"
        assert body["database"].endswith("tenant_acme.sqlite")

    @pytest.fixture
    def ended(self, manager: MultiDatabaseManager, monkeypatch: pytest.MonkeyPatch) -> list[str]:
        """Records every end() call made by the middleware."""
        calls: list[str] = []
        original = manager.end

        async def end() -> None:
            current = manager.current_tenant()
            calls.append(current.slug if current else "")
            await original()

        monkeypatch.setattr(manager, "end", end)
        return calls

    def test_tenancy_ended_after_request(self, client: TestClient, ended: list[str]) -> None:
        client.get("/dashboard", headers={"host": "acme.example.com"})

        assert ended == ["acme"]

    def test_tenancy_ended_after_error(self, client: TestClient, ended: list[str]) -> None:
        """The connection is released when the handler raises."""
        response = client.get("/fail", headers={"host": "acme.example.com"})

        assert response.status_code == 500
        assert ended == ["acme"]

    def test_rejected_requests_never_initialize(
        self, client: TestClient, ended: list[str]
    ) -> None:
        client.get("/dashboard", headers={"host": "ghost.example.com"})
        client.get("/", headers={"host": "localhost"})

        assert ended == []

    def test_unknown_tenant(self, client: TestClient) -> None:
        response = client.get("/dashboard", headers={"host": "ghost.example.com"})

        assert response.status_code == 404
        assert response.json() == {"error": "Tenant not found for subdomain: ghost"}

    def test_reserved_subdomain(self, client: TestClient) -> None:
        response = client.get("/dashboard", headers={"host": "www.example.com"})

        assert response.status_code == 404
        assert response.json() == {"error": "The subdomain 'www' is reserved."}

    def test_central_domain_passes_through(self, client: TestClient) -> None:
        response = client.get("/", headers={"host": "localhost:8000"})

        assert response.status_code == 200
        assert response.json() == {"tenant": None}

    def test_base_domain_redirects_to_central_path(self, client: TestClient) -> None:
        response = client.get(
            "/dashboard", headers={"host": "example.com"}, follow_redirects=False
        )

        assert response.status_code == 302
        assert response.headers["location"] == "/"

    def test_base_domain_on_central_path(self, client: TestClient) -> None:
        response = client.get("/", headers={"host": "example.com"})

        assert response.status_code == 200
        assert response.json() == {"tenant": None}

    def test_base_domain_serves_central_app(
        self, store, tmp_path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """With environment configuration the bare base domain is central."""
        monkeypatch.setenv("APP_DOMAIN", "example.com")
        monkeypatch.setenv("TENANCY_MODE", "multi")
        monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'central.sqlite'}")
        config = TenancyConfig.from_settings(Settings(_env_file=None))
        client = TestClient(_build_app(config, store, MultiDatabaseManager(config)))

        response = client.get("/pricing", headers={"host": "example.com"}, follow_redirects=False)

        assert response.status_code == 200
        assert response.json() == {"tenant": None}
        assert store.calls == []

    def test_excluded_path(self, client: TestClient) -> None:
        """Health checks are served without tenant resolution."""
        response = client.get("/health", headers={"host": "ghost.example.com"})

        assert response.status_code == 200

    def test_single_mode_is_passthrough(
        self, config: TenancyConfig, store, manager: MultiDatabaseManager
    ) -> None:
        config = dataclasses.replace(config, mode=TenancyMode.SINGLE)
        client = TestClient(_build_app(config, store, manager))

        response = client.get("/", headers={"host": "ghost.example.com"})

        assert response.status_code == 200
        assert response.json() == {"tenant": None}


class TestPreventAccessFromCentralDomainsMiddleware:
    @pytest.fixture
    def client(self, config: TenancyConfig) -> TestClient:
        app = FastAPI()
        app.add_middleware(PreventAccessFromCentralDomainsMiddleware, config=config)

        @app.get("/")
        async def home() -> dict[str, str]:
            return {"page": "home"}

        @app.get("/dashboard")
        async def dashboard() -> dict[str, str]:
            return {"page": "dashboard"}

        return TestClient(app)

    def test_central_domain_redirected(self, client: TestClient) -> None:
        response = client.get("/dashboard", headers={"host": "localhost"}, follow_redirects=False)

        assert response.status_code == 302
        assert response.headers["location"] == "/"

    def test_central_path_allowed(self, client: TestClient) -> None:
        assert client.get("/", headers={"host": "localhost"}).status_code == 200

    def test_tenant_domain_allowed(self, client: TestClient) -> None:
        response = client.get("/dashboard", headers={"host": "acme.example.com"})

        assert response.json() == {"page": "dashboard"}
