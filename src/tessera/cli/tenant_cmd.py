"""CLI commands for creating and deleting tenants.

Usage:
    tessera tenant create "Acme Corp"
    tessera tenant create "Acme Corp" --slug acme --domain acme-app --seed
    tessera tenant delete acme --force --keep-database
"""

from __future__ import annotations

import asyncio

import typer

from tessera.cli.common import echo_event, load_config, open_runtime
from tessera.errors import TenancyError, TenantNotFoundError
from tessera.events.schemas import TenantEvent

app = typer.Typer(help="Create and delete tenants", no_args_is_help=True)


@app.command("create")
def create(
    name: str = typer.Argument(..., help="The tenant name"),
    slug: str | None = typer.Option(
        None, "--slug", help="The tenant slug (defaults to slugified name)"
    ),
    email: str | None = typer.Option(None, "--email", help="The tenant email address"),
    domain: str | None = typer.Option(None, "--domain", help="The subdomain (defaults to slug)"),
    no_database: bool = typer.Option(False, "--no-database", help="Do not create a database"),
    no_migrate: bool = typer.Option(False, "--no-migrate", help="Do not run migrations"),
    seed: bool = typer.Option(False, "--seed", help="Seed the database after migrations"),
) -> None:
    """Create a tenant with a primary domain and provision its database.

    Provisioning runs inline, whatever provisioning.queue says.
    """
    raise typer.Exit(
        asyncio.run(_create(name, slug, email, domain, no_database, no_migrate, seed))
    )


async def _create(
    name: str,
    slug: str | None,
    email: str | None,
    subdomain: str | None,
    no_database: bool,
    no_migrate: bool,
    seed: bool,
) -> int:
    config = load_config()
    config = config.with_provisioning(
        auto_create_database=config.provisioning.auto_create_database and not no_database,
        auto_migrate=config.provisioning.auto_migrate and not no_migrate,
        auto_seed=seed or config.provisioning.auto_seed,
        queue=False,
    )
    if seed and not config.provisioning.seeder:
        typer.secho("No seeder configured (TESSERA_SEEDER); skipping seed.", fg="yellow")

    failures: list[TenantEvent] = []

    async def record(event: TenantEvent) -> None:
        await echo_event(event)
        if event.is_failure:
            failures.append(event)

    async with open_runtime(config) as runtime:
        runtime.bus.subscribe_all(record)
        typer.echo(f"Creating tenant: {name}")
        try:
            tenant, primary = await runtime.service.create(
                name, slug=slug, email=email, subdomain=subdomain
            )
        except TenancyError as e:
            typer.secho(str(e), fg=typer.colors.RED, err=True)
            return 1

    typer.echo()
    typer.echo(f"  ID:       {tenant.id}")
    typer.echo(f"  Name:     {tenant.name}")
    typer.echo(f"  Slug:     {tenant.slug}")
    typer.echo(f"  Database: {tenant.database or 'N/A'}")
    typer.echo(f"  Domain:   {primary.domain}")

    if failures:
        typer.secho("Tenant created, but provisioning failed.", fg=typer.colors.RED, err=True)
        return 1
    typer.secho("Tenant created successfully!", fg=typer.colors.GREEN)
    return 0


@app.command("delete")
def delete(
    tenant: str = typer.Argument(..., help="Tenant ID or slug"),
    force: bool = typer.Option(False, "--force", "-f", help="Skip the confirmation prompt"),
    keep_database: bool = typer.Option(
        False, "--keep-database", help="Keep the tenant database"
    ),
) -> None:
    """Delete a tenant, its domains and (in multi mode) its database."""
    raise typer.Exit(asyncio.run(_delete(tenant, force, keep_database)))


async def _delete(identifier: str, force: bool, keep_database: bool) -> int:
    config = load_config()
    config = config.with_provisioning(queue=False)

    failed = False

    async def record(event: TenantEvent) -> None:
        nonlocal failed
        await echo_event(event)
        failed = failed or event.is_failure

    async with open_runtime(config) as runtime:
        try:
            tenant = await runtime.service.find(identifier)
        except TenantNotFoundError as e:
            typer.secho(str(e), fg=typer.colors.RED, err=True)
            return 1

        typer.secho(f"About to delete tenant: {tenant.name} ({tenant.slug})", fg="yellow")
        if tenant.database:
            typer.secho(f"Database: {tenant.database}", fg="yellow")
        if not force and not typer.confirm("Are you sure you want to delete this tenant?"):
            typer.echo("Deletion cancelled.")
            return 0

        runtime.bus.subscribe_all(record)
        await runtime.service.delete(tenant.id, keep_database=keep_database)

    if failed:
        typer.secho("Tenant deleted, but its database was not.", fg=typer.colors.RED, err=True)
        return 1
    typer.secho("Tenant deleted successfully!", fg=typer.colors.GREEN)
    return 0
