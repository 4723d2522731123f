"""Shared lifecycle for CLI commands."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import typer

from tessera.cache.redis import close_redis
from tessera.config import TenancyConfig, settings
from tessera.events.schemas import TenantEvent
from tessera.jobs.queue import JobQueue
from tessera.observability.logging import configure_logging
from tessera.persistence.db import close_db, init_db
from tessera.runtime import TenancyRuntime, create_runtime


def load_config() -> TenancyConfig:
    configure_logging(json_format=False, level=settings.log_level)
    return TenancyConfig.from_settings(settings)


@asynccontextmanager
async def open_runtime(
    config: TenancyConfig, queue: JobQueue | None = None
) -> AsyncIterator[TenancyRuntime]:
    """Runtime on the central database, closed with all connections on exit."""
    await init_db()
    runtime = create_runtime(config, queue=queue)
    try:
        yield runtime
    finally:
        await runtime.close()
        await close_redis()
        await close_db()


async def echo_event(event: TenantEvent) -> None:
    """Print a lifecycle event as one status line."""
    label = event.event_type.value.removeprefix("tenant.").replace("_", " ")
    if event.is_failure:
        typer.secho(f"  ✗ {label}: {event.error}", fg=typer.colors.RED, err=True)
    else:
        typer.secho(f"  ✓ {label}", fg=typer.colors.GREEN)
