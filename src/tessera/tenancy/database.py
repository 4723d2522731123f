"""Per-tenant database connections and provisioning.

MultiDatabaseManager is the connection switcher for multi-database tenancy:
- initialize()/end() activate and release a tenant connection for the
  current execution context (request or job)
- create_database()/delete_database() provision the physical database
- migrate_tenant()/rollback_tenant()/seed_tenant() run schema operations
  against the tenant connection

The active connection is a ContextVar value (see tessera.tenancy.context),
never an attribute of the manager, so one manager instance is shared by
every request and job in a process.

Example:
    manager = MultiDatabaseManager(config)

    async with manager.scope(tenant):
        async with manager.session() as session:
            await session.execute(...)
"""

from __future__ import annotations

import inspect
import logging
import re
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any, TypeVar

from sqlalchemy import text
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from tessera.errors import InvalidDatabaseNameError, UnsupportedDriverError
from tessera.observability.logging import tenant_id_var
from tessera.tenancy.context import (
    TenancyContext,
    clear_tenancy_context,
    get_tenancy_context,
    set_tenancy_context,
)
from tessera.tenancy.migrations import AlembicMigrationRunner, MigrationRunner, resolve_seeder

if TYPE_CHECKING:
    from tessera.config import TenancyConfig
    from tessera.tenancy.models import Tenant

logger = logging.getLogger(__name__)

T = TypeVar("T")

EngineFactory = Callable[..., AsyncEngine]

# Database names are interpolated into DDL; keep them to safe identifiers
_DATABASE_NAME = re.compile(r"^[A-Za-z0-9_-]+$")

SQLITE_EXTENSION = ".sqlite"

_POSTGRES = "postgresql"
_MYSQL = frozenset({"mysql", "mariadb"})
_SQLITE = "sqlite"


def validate_database_name(name: str) -> str:
    """Return name unchanged, raising if it is not a safe identifier."""
    if not _DATABASE_NAME.match(name):
        raise InvalidDatabaseNameError(name)
    return name


class MultiDatabaseManager:
    """Connection switcher and provisioner for tenant databases.

    Args:
        config: Immutable tenancy configuration
        runner: Migration runner (defaults to Alembic on tenant.migrations_path)
        engine_factory: Engine constructor, create_async_engine by default
    """

    def __init__(
        self,
        config: TenancyConfig,
        runner: MigrationRunner | None = None,
        engine_factory: EngineFactory | None = None,
    ) -> None:
        self.config = config
        self.runner = runner or AlembicMigrationRunner(config.tenant.migrations_path)
        self._engine_factory = engine_factory or create_async_engine
        self._template_url = make_url(
            config.tenant.connection_template or config.central.database_url
        )
        self._central_url = make_url(config.central.database_url)
        # One engine per tenant URL, shared across execution contexts
        self._engines: dict[str, AsyncEngine] = {}
        self._admin_engine: AsyncEngine | None = None

    # -------------------------------------------------------------------------
    # Connection switching
    # -------------------------------------------------------------------------

    @property
    def backend(self) -> str:
        """Backend of the central connection (postgresql, mysql, sqlite...)."""
        return self._central_url.get_backend_name()

    def sqlite_path(self, database_name: str) -> Path:
        return Path(self.config.tenant.sqlite_directory) / f"{database_name}{SQLITE_EXTENSION}"

    def tenant_url(self, tenant: Tenant) -> URL:
        """Connection URL of a tenant's dedicated database.

        The connection template with its database replaced by the tenant
        database name; for SQLite, a file in tenant.sqlite_directory.
        """
        name = validate_database_name(tenant.database_name())
        if self._template_url.get_backend_name() == _SQLITE:
            return self._template_url.set(database=str(self.sqlite_path(name)))
        return self._template_url.set(database=name)

    def _engine_for(self, url: URL) -> AsyncEngine:
        key = url.render_as_string(hide_password=False)
        engine = self._engines.get(key)
        if engine is None:
            engine = self._engine_factory(url, poolclass=NullPool)
            self._engines[key] = engine
        return engine

    async def initialize(self, tenant: Tenant) -> None:
        """Activate the tenant's connection for the current execution context.

        Idempotent for the tenant that is already active. Switching from a
        different tenant replaces its context.
        """
        current = get_tenancy_context()
        if current is not None and current.tenant.id == tenant.id:
            return

        url = self.tenant_url(tenant)
        set_tenancy_context(TenancyContext(tenant=tenant, url=url, engine=self._engine_for(url)))
        tenant_id_var.set(tenant.id)
        if current is None:
            logger.debug("Tenancy initialized for %s", tenant.slug)
        else:
            logger.debug("Tenancy switched from %s to %s", current.tenant.slug, tenant.slug)

    async def end(self) -> None:
        """Return the current execution context to the central connection.

        Safe to call when tenancy is not initialized.
        """
        current = get_tenancy_context()
        if current is None:
            return

        clear_tenancy_context()
        tenant_id_var.set("")
        logger.debug("Tenancy ended for %s", current.tenant.slug)

    def is_initialized(self) -> bool:
        return get_tenancy_context() is not None

    def current_tenant(self) -> Tenant | None:
        ctx = get_tenancy_context()
        return ctx.tenant if ctx is not None else None

    def connection(self) -> AsyncEngine:
        """Engine of the active tenant database.

        Raises:
            RuntimeError: If tenancy is not initialized
        """
        ctx = get_tenancy_context()
        if ctx is None:
            raise RuntimeError("Tenancy is not initialized; no tenant connection is active.")
        return ctx.engine

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Transactional session on the active tenant database."""
        factory = async_sessionmaker(self.connection(), class_=AsyncSession, expire_on_commit=False)
        async with factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    @asynccontextmanager
    async def scope(self, tenant: Tenant) -> AsyncIterator[AsyncEngine]:
        """Run a block within a tenant's context.

        On every exit path the previously active tenant is restored, or
        tenancy is ended when there was none.
        """
        previous = self.current_tenant()
        await self.initialize(tenant)
        try:
            yield self.connection()
        finally:
            if previous is not None:
                await self.initialize(previous)
            else:
                await self.end()

    async def run(self, tenant: Tenant, callback: Callable[[Tenant], Awaitable[T] | T]) -> T:
        """Call callback(tenant) within the tenant's context and return its result."""
        async with self.scope(tenant):
            result = callback(tenant)
            if inspect.isawaitable(result):
                return await result
            return result

    # -------------------------------------------------------------------------
    # Provisioning
    # -------------------------------------------------------------------------

    def _admin(self) -> AsyncEngine:
        """Autocommit engine on the central database (CREATE/DROP DATABASE)."""
        if self._admin_engine is None:
            self._admin_engine = self._engine_factory(
                self._central_url,
                poolclass=NullPool,
                isolation_level="AUTOCOMMIT",
            )
        return self._admin_engine

    async def create_database(self, tenant: Tenant) -> bool:
        """Create the tenant database if it does not exist.

        Returns:
            True when the database exists afterwards, False when the server
            or filesystem reported an error (logged)

        Raises:
            UnsupportedDriverError: If the central backend cannot be provisioned
            InvalidDatabaseNameError: If the tenant database name is unsafe
        """
        name = validate_database_name(tenant.database_name())
        backend = self.backend

        try:
            if backend == _SQLITE:
                path = self.sqlite_path(name)
                path.parent.mkdir(parents=True, exist_ok=True)
                path.touch(exist_ok=True)
            elif backend == _POSTGRES:
                async with self._admin().connect() as conn:
                    exists = await conn.scalar(
                        text("SELECT 1 FROM pg_database WHERE datname = :name"), {"name": name}
                    )
                    if not exists:
                        quoted = conn.dialect.identifier_preparer.quote(name)
                        await conn.execute(text(f"CREATE DATABASE {quoted}"))
            elif backend in _MYSQL:
                async with self._admin().connect() as conn:
                    quoted = conn.dialect.identifier_preparer.quote(name)
                    await conn.execute(
                        text(
                            f"CREATE DATABASE IF NOT EXISTS {quoted} "
                            "CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci"
                        )
                    )
            else:
                raise UnsupportedDriverError(backend)
        except (SQLAlchemyError, OSError):
            logger.exception("Failed to create database %s for tenant %s", name, tenant.slug)
            return False

        logger.info("Created database %s for tenant %s", name, tenant.slug)
        return True

    async def delete_database(self, tenant: Tenant) -> bool:
        """Drop the tenant database if it exists.

        Ends tenancy first when the tenant is active in this context and
        disposes its cached engine.
        """
        name = validate_database_name(tenant.database_name())
        backend = self.backend

        active = self.current_tenant()
        if active is not None and active.id == tenant.id:
            await self.end()
        await self._dispose_engine(self.tenant_url(tenant))

        try:
            if backend == _SQLITE:
                self.sqlite_path(name).unlink(missing_ok=True)
            elif backend == _POSTGRES:
                async with self._admin().connect() as conn:
                    await conn.execute(
                        text(
                            "SELECT pg_terminate_backend(pid) FROM pg_stat_activity "
                            "WHERE datname = :name AND pid <> pg_backend_pid()"
                        ),
                        {"name": name},
                    )
                    quoted = conn.dialect.identifier_preparer.quote(name)
                    await conn.execute(text(f"DROP DATABASE IF EXISTS {quoted}"))
            elif backend in _MYSQL:
                async with self._admin().connect() as conn:
                    quoted = conn.dialect.identifier_preparer.quote(name)
                    await conn.execute(text(f"DROP DATABASE IF EXISTS {quoted}"))
            else:
                raise UnsupportedDriverError(backend)
        except (SQLAlchemyError, OSError):
            logger.exception("Failed to delete database %s for tenant %s", name, tenant.slug)
            return False

        logger.info("Deleted database %s for tenant %s", name, tenant.slug)
        return True

    async def database_exists(self, name: str) -> bool:
        """Check whether a tenant database exists. Errors count as absent."""
        backend = self.backend
        try:
            if backend == _SQLITE:
                return self.sqlite_path(name).is_file()
            if backend == _POSTGRES:
                query = text("SELECT 1 FROM pg_database WHERE datname = :name")
            elif backend in _MYSQL:
                query = text(
                    "SELECT SCHEMA_NAME FROM INFORMATION_SCHEMA.SCHEMATA WHERE SCHEMA_NAME = :name"
                )
            else:
                return False
            async with self._admin().connect() as conn:
                return (await conn.scalar(query, {"name": name})) is not None
        except SQLAlchemyError:
            logger.warning("Could not check database %s", name, exc_info=True)
            return False

    async def migrate_tenant(self, tenant: Tenant, options: dict[str, Any] | None = None) -> int:
        """Migrate the tenant database. Returns the runner exit code (0 = success).

        Options:
            revision: Target revision (default "head")
            fresh: Downgrade to base before upgrading
        """
        async with self.scope(tenant):
            code = await self.runner.upgrade(self.tenant_url(tenant), options or {})
        logger.info("Migrated tenant %s (exit code %d)", tenant.slug, code)
        return code

    async def rollback_tenant(self, tenant: Tenant, options: dict[str, Any] | None = None) -> int:
        """Roll back tenant migrations (default one revision)."""
        async with self.scope(tenant):
            code = await self.runner.downgrade(self.tenant_url(tenant), options or {})
        logger.info("Rolled back tenant %s (exit code %d)", tenant.slug, code)
        return code

    async def seed_tenant(self, tenant: Tenant, seeder: str | None = None) -> int:
        """Run a seeder against the tenant database.

        The seeder ("package.module:callable", default provisioning.seeder) is
        called with an AsyncSession on the tenant database; the session is
        committed when it returns. An int return value is used as the exit
        code, anything else counts as 0.

        Returns:
            0 when no seeder is configured
        """
        identifier = seeder or self.config.provisioning.seeder
        if not identifier:
            return 0

        seed = resolve_seeder(identifier)
        async with self.scope(tenant), self.session() as session:
            result = seed(session)
            if inspect.isawaitable(result):
                result = await result

        logger.info("Seeded tenant %s with %s", tenant.slug, identifier)
        return result if isinstance(result, int) else 0

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def _dispose_engine(self, url: URL) -> None:
        engine = self._engines.pop(url.render_as_string(hide_password=False), None)
        if engine is not None:
            await engine.dispose()

    async def close(self) -> None:
        """Dispose every cached engine."""
        engines = list(self._engines.values())
        self._engines.clear()
        if self._admin_engine is not None:
            engines.append(self._admin_engine)
            self._admin_engine = None
        for engine in engines:
            await engine.dispose()
