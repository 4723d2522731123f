"""Runtime wiring for Tessera.

Builds the object graph shared by the HTTP app, the worker and the CLI:
store, lookup cache, event bus, connection switcher, resolver, tenant
service and the provisioning state machine (already subscribed to the bus).

Example:
    runtime = create_runtime()
    tenant, domain = await runtime.service.create("Acme Corp")
    await runtime.close()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from tessera.cache.redis import LookupCache, RedisLookupCache, get_redis_client
from tessera.config import TenancyConfig, settings
from tessera.events.bus import EventBus, LocalEventBus
from tessera.jobs.queue import JobQueue
from tessera.persistence.db import session_context
from tessera.persistence.repositories import SqlTenantStore
from tessera.provisioning.machine import ProvisioningStateMachine
from tessera.tenancy.database import MultiDatabaseManager
from tessera.tenancy.migrations import MigrationRunner
from tessera.tenancy.resolver import DomainResolver
from tessera.tenancy.service import ManagedTenantStore, TenantService

logger = logging.getLogger(__name__)


@dataclass
class TenancyRuntime:
    """Every long-lived tenancy component of one process."""

    config: TenancyConfig
    store: ManagedTenantStore
    cache: LookupCache | None
    bus: EventBus
    manager: MultiDatabaseManager
    resolver: DomainResolver
    service: TenantService
    machine: ProvisioningStateMachine
    queue: JobQueue | None = None

    async def close(self) -> None:
        """Dispose tenant database engines."""
        await self.manager.close()


def create_runtime(
    config: TenancyConfig | None = None,
    *,
    store: ManagedTenantStore | None = None,
    cache: LookupCache | None = None,
    queue: JobQueue | None = None,
    runner: MigrationRunner | None = None,
    bus: EventBus | None = None,
) -> TenancyRuntime:
    """Build a runtime, defaulting to the central database and Redis.

    Args:
        config: Tenancy configuration (defaults to the environment settings)
        store: Tenant store (defaults to the central database)
        cache: Lookup cache (defaults to Redis when caching is enabled)
        queue: Job queue (created when provisioning.queue is enabled)
        runner: Migration runner (defaults to Alembic)
        bus: Event bus (defaults to a new LocalEventBus)
    """
    config = config or TenancyConfig.from_settings(settings)
    store = store or SqlTenantStore(session_context)
    if cache is None and config.cache.enabled:
        cache = RedisLookupCache(get_redis_client())
    if queue is None and config.provisioning.queue:
        queue = JobQueue(max_retries=config.provisioning.max_retries)
    bus = bus or LocalEventBus()

    manager = MultiDatabaseManager(config, runner=runner)
    machine = ProvisioningStateMachine(config, manager, bus, queue=queue)
    machine.attach()

    logger.debug(
        "Tenancy runtime created (mode=%s, queue=%s)",
        config.mode.value,
        config.provisioning.queue,
    )
    return TenancyRuntime(
        config=config,
        store=store,
        cache=cache,
        bus=bus,
        manager=manager,
        resolver=DomainResolver(config, store, cache),
        service=TenantService(config, store, bus, cache),
        machine=machine,
        queue=queue,
    )

