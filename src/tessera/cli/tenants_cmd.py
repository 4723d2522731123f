"""CLI commands operating on every tenant.

Usage:
    tessera tenants migrate
    tessera tenants migrate --tenant acme --fresh --seed
    tessera tenants rollback --tenant acme --revision -2

These call the connection switcher directly and emit no lifecycle events.
"""

from __future__ import annotations

import asyncio
from typing import Any

import typer

from tessera.cli.common import load_config, open_runtime
from tessera.config import settings
from tessera.runtime import TenancyRuntime
from tessera.tenancy.models import Tenant

app = typer.Typer(help="Run schema operations on tenant databases", no_args_is_help=True)


async def _select(runtime: TenancyRuntime, identifier: str | None) -> list[Tenant] | None:
    """Tenants to operate on, or None when --tenant matched nothing."""
    if identifier is None:
        return await runtime.store.list_tenants()
    tenant = await runtime.store.find_tenant(identifier)
    return [tenant] if tenant is not None else None


def _confirm_production(force: bool) -> bool:
    if force or settings.env not in {"prod", "production"}:
        return True
    return typer.confirm("Running in production. Do you really wish to run this command?")


@app.command("migrate")
def migrate(
    tenant: str | None = typer.Option(
        None, "--tenant", "-t", help="Migrate only this tenant (by ID or slug)"
    ),
    fresh: bool = typer.Option(
        False, "--fresh", help="Drop all tables and re-run all migrations"
    ),
    seed: bool = typer.Option(False, "--seed", help="Seed the database after migrations"),
    seeder: str | None = typer.Option(
        None, "--seeder", help="Seeder to run (package.module:callable)"
    ),
    revision: str = typer.Option("head", "--revision", help="Target revision"),
    force: bool = typer.Option(False, "--force", help="Force migrations in production"),
) -> None:
    """Run migrations for all tenants or a specific tenant."""
    if not _confirm_production(force):
        raise typer.Exit(1)
    raise typer.Exit(asyncio.run(_migrate(tenant, fresh, seed, seeder, revision)))


async def _migrate(
    identifier: str | None,
    fresh: bool,
    seed: bool,
    seeder: str | None,
    revision: str,
) -> int:
    config = load_config()
    options: dict[str, Any] = {"revision": revision}
    if fresh:
        options["fresh"] = True

    async with open_runtime(config) as runtime:
        tenants = await _select(runtime, identifier)
        if tenants is None:
            typer.secho(f"Tenant '{identifier}' not found.", fg=typer.colors.RED, err=True)
            return 1
        if not tenants:
            typer.secho("No tenants found.", fg="yellow")
            return 0

        typer.echo(f"Migrating {len(tenants)} tenant(s)...")
        failed = 0
        for tenant in tenants:
            label = f"{tenant.name} ({tenant.slug})"
            try:
                if await runtime.manager.migrate_tenant(tenant, options) != 0:
                    raise RuntimeError("migration exited with a non-zero code")
                if seed or seeder:
                    if await runtime.manager.seed_tenant(tenant, seeder) != 0:
                        raise RuntimeError("seeder exited with a non-zero code")
            except Exception as e:
                failed += 1
                typer.secho(f"  ✗ {label}: {e}", fg=typer.colors.RED, err=True)
            else:
                typer.secho(f"  ✓ {label}", fg=typer.colors.GREEN)

    if failed:
        typer.secho(f"Failed to migrate {failed} tenant(s).", fg=typer.colors.RED, err=True)
        return 1
    typer.secho("All tenants migrated successfully.", fg=typer.colors.GREEN)
    return 0


@app.command("rollback")
def rollback(
    tenant: str | None = typer.Option(
        None, "--tenant", "-t", help="Roll back only this tenant (by ID or slug)"
    ),
    revision: str = typer.Option("-1", "--revision", help="Target revision"),
    force: bool = typer.Option(False, "--force", help="Force rollback in production"),
) -> None:
    """Roll back migrations for all tenants or a specific tenant."""
    if not _confirm_production(force):
        raise typer.Exit(1)
    raise typer.Exit(asyncio.run(_rollback(tenant, revision)))


async def _rollback(identifier: str | None, revision: str) -> int:
    config = load_config()

    async with open_runtime(config) as runtime:
        tenants = await _select(runtime, identifier)
        if tenants is None:
            typer.secho(f"Tenant '{identifier}' not found.", fg=typer.colors.RED, err=True)
            return 1

        failed = 0
        for tenant in tenants:
            code = await runtime.manager.rollback_tenant(tenant, {"revision": revision})
            if code != 0:
                failed += 1
                typer.secho(
                    f"  ✗ {tenant.slug} (exit code {code})", fg=typer.colors.RED, err=True
                )
            else:
                typer.secho(f"  ✓ {tenant.slug}", fg=typer.colors.GREEN)

    return 1 if failed else 0
