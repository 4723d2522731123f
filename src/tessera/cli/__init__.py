"""CLI commands for Tessera.

Provides command-line interface using Typer:
- tessera tenant create|delete: Manage tenants
- tessera tenants migrate|rollback: Schema operations on tenant databases
- tessera worker: Process queued provisioning steps
- tessera serve: Run the API server

Usage:
    tessera --help
    tessera tenant create "Acme Corp" --email ops@acme.test
    tessera tenants migrate --tenant acme
    tessera worker --queue provisioning
    tessera serve --port 8080
"""

import typer

from tessera.cli.serve import app as serve_app
from tessera.cli.tenant_cmd import app as tenant_app
from tessera.cli.tenants_cmd import app as tenants_app
from tessera.cli.worker_cmd import app as worker_app

# Main CLI application
app = typer.Typer(
    name="tessera",
    help="Tessera: multi-database tenant resolution and provisioning",
    no_args_is_help=True,
)

# Add subcommands
app.add_typer(tenant_app, name="tenant")
app.add_typer(tenants_app, name="tenants")
app.add_typer(worker_app, name="worker")
app.add_typer(serve_app, name="serve")


@app.callback()
def callback() -> None:
    """Tessera: multi-database tenant resolution and provisioning."""
    pass


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
