"""Tests for the local event bus."""

import pytest

from tessera.errors import ProvisioningError
from tessera.events.bus import LocalEventBus
from tessera.events.schemas import EventType, TenantEvent
from tessera.tenancy.models import Tenant


class TestTenantEvent:
    def test_failure_types(self) -> None:
        assert EventType.MIGRATION_FAILED.is_failure
        assert EventType.SEEDING_FAILED.is_failure
        assert not EventType.MIGRATED.is_failure
        assert not EventType.TENANT_CREATED.is_failure

    def test_to_dict(self, tenant: Tenant) -> None:
        event = TenantEvent(
            event_type=EventType.MIGRATION_FAILED,
            tenant=tenant,
            error=ProvisioningError("migrate", "migrate failed with exit code: 1", exit_code=1),
        )

        data = event.to_dict()

        assert data["event_type"] == "tenant.migration_failed"
        assert data["tenant_slug"] == "acme"
        assert data["error"] == "ProvisioningError: migrate failed with exit code: 1"
        assert event.is_failure


class TestLocalEventBus:
    """Test inline dispatch."""

    @pytest.fixture
    def event(self, tenant: Tenant) -> TenantEvent:
        return TenantEvent(event_type=EventType.TENANT_CREATED, tenant=tenant)

    async def test_dispatch_to_type_handlers(
        self, bus: LocalEventBus, event: TenantEvent, tenant: Tenant
    ) -> None:
        received: list[EventType] = []

        async def on_created(e: TenantEvent) -> None:
            received.append(e.event_type)

        bus.subscribe(EventType.TENANT_CREATED, on_created)

        await bus.publish(event)
        await bus.publish(TenantEvent(event_type=EventType.TENANT_DELETED, tenant=tenant))

        assert received == [EventType.TENANT_CREATED]

    async def test_handlers_run_in_subscription_order(
        self, bus: LocalEventBus, event: TenantEvent
    ) -> None:
        order: list[str] = []

        def handler(name: str):
            async def handle(e: TenantEvent) -> None:
                order.append(name)

            return handle

        bus.subscribe(EventType.TENANT_CREATED, handler("first"))
        bus.subscribe_all(handler("all"))
        bus.subscribe(EventType.TENANT_CREATED, handler("second"))

        await bus.publish(event)

        assert order == ["first", "all", "second"]

    async def test_nested_publish_completes_before_return(
        self, bus: LocalEventBus, event: TenantEvent, recorder
    ) -> None:
        """An event published by a handler is fully dispatched inside publish()."""

        async def chain(e: TenantEvent) -> None:
            await bus.publish(TenantEvent(event_type=EventType.DATABASE_CREATED, tenant=e.tenant))

        bus.subscribe(EventType.TENANT_CREATED, chain)

        await bus.publish(event)

        assert recorder.types == [EventType.TENANT_CREATED, EventType.DATABASE_CREATED]

    async def test_handler_errors_propagate(
        self, bus: LocalEventBus, event: TenantEvent
    ) -> None:
        async def broken(e: TenantEvent) -> None:
            raise ValueError("handler failed")

        bus.subscribe(EventType.TENANT_CREATED, broken)

        with pytest.raises(ValueError, match="handler failed"):
            await bus.publish(event)

    async def test_unsubscribe(self, bus: LocalEventBus, event: TenantEvent) -> None:
        received: list[TenantEvent] = []

        async def handle(e: TenantEvent) -> None:
            received.append(e)

        bus.subscribe(EventType.TENANT_CREATED, handle)
        bus.unsubscribe(handle)
        await bus.publish(event)

        assert received == []
        assert bus.handlers_for(EventType.TENANT_CREATED) == []
