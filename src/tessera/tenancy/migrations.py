"""Schema migration and seeding for tenant databases.

Tenant schemas are managed by an Alembic script directory
(tenant.migrations_path). The runner points Alembic at the tenant database
by overriding sqlalchemy.url, so the directory's env.py must read the URL
from the Alembic config (config.get_main_option("sqlalchemy.url")).

Exit codes follow command-line conventions: 0 on success, 1 when Alembic
reports a failure.
"""

from __future__ import annotations

import asyncio
import importlib
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any

from alembic import command
from alembic.config import Config
from alembic.util import CommandError

from tessera.errors import SeederNotFoundError

if TYPE_CHECKING:
    from sqlalchemy.engine import URL

logger = logging.getLogger(__name__)

DEFAULT_UPGRADE_REVISION = "head"
DEFAULT_DOWNGRADE_REVISION = "-1"


class MigrationRunner(ABC):
    """Runs schema migrations against one tenant database."""

    @abstractmethod
    async def upgrade(self, url: URL, options: dict[str, Any] | None = None) -> int:
        """Migrate up. Options: revision (default "head"), fresh (bool)."""

    @abstractmethod
    async def downgrade(self, url: URL, options: dict[str, Any] | None = None) -> int:
        """Migrate down. Options: revision (default "-1")."""


class AlembicMigrationRunner(MigrationRunner):
    """MigrationRunner using Alembic's command API.

    Alembic commands are synchronous (env.py typically calls asyncio.run for
    async drivers), so they run in a worker thread.
    """

    def __init__(self, script_location: str | Path) -> None:
        self.script_location = Path(script_location)

    def _config(self, url: URL) -> Config:
        config = Config()
        config.set_main_option("script_location", str(self.script_location))
        # ConfigParser interpolation: escape % in passwords
        config.set_main_option(
            "sqlalchemy.url",
            url.render_as_string(hide_password=False).replace("%", "%%"),
        )
        return config

    def _has_scripts(self) -> bool:
        if self.script_location.is_dir():
            return True
        logger.warning("Nothing to migrate: %s does not exist", self.script_location)
        return False

    async def upgrade(self, url: URL, options: dict[str, Any] | None = None) -> int:
        options = options or {}
        if not self._has_scripts():
            return 0

        config = self._config(url)
        revision = options.get("revision") or DEFAULT_UPGRADE_REVISION
        try:
            if options.get("fresh"):
                await asyncio.to_thread(command.downgrade, config, "base")
            await asyncio.to_thread(command.upgrade, config, revision)
        except CommandError as e:
            logger.error("Migration of %s failed: %s", url.database, e)
            return 1
        return 0

    async def downgrade(self, url: URL, options: dict[str, Any] | None = None) -> int:
        options = options or {}
        if not self._has_scripts():
            return 0

        revision = options.get("revision") or DEFAULT_DOWNGRADE_REVISION
        try:
            await asyncio.to_thread(command.downgrade, self._config(url), revision)
        except CommandError as e:
            logger.error("Rollback of %s failed: %s", url.database, e)
            return 1
        return 0


def resolve_seeder(identifier: str) -> Callable[..., Any]:
    """Import a seeder given as "package.module:callable".

    A bare module path resolves to that module's ``run`` function.

    Raises:
        SeederNotFoundError: If the module or attribute cannot be found
    """
    module_name, _, attr = identifier.partition(":")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise SeederNotFoundError(identifier, str(e)) from e

    seeder = getattr(module, attr or "run", None)
    if seeder is None or not callable(seeder):
        raise SeederNotFoundError(identifier, f"no callable '{attr or 'run'}' in {module_name}")
    return seeder
