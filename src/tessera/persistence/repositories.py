"""Repository pattern for tenant and domain persistence.

TenantRepository works inside a caller-owned session and maps ORM rows to the
Tenant/Domain dataclasses. SqlTenantStore implements the TenantStore protocol
used by the resolver and the tenant service, opening one short transaction per
call.
"""

from __future__ import annotations

from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from datetime import UTC, datetime

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from tessera.persistence.tables import DomainTable, TenantTable
from tessera.tenancy.models import Domain, Tenant

SessionScope = Callable[[], AbstractAsyncContextManager[AsyncSession]]


def _tenant_from_row(row: TenantTable) -> Tenant:
    return Tenant(
        id=row.id,
        name=row.name,
        slug=row.slug,
        email=row.email,
        database=row.database,
        data=dict(row.data or {}),
        settings=dict(row.settings or {}),
        created_at=row.created_at or datetime.now(UTC),
    )


def _domain_from_row(row: DomainTable, tenant: Tenant | None = None) -> Domain:
    return Domain(
        id=row.id,
        domain=row.domain,
        tenant_id=row.tenant_id,
        is_primary=row.is_primary,
        is_verified=row.is_verified,
        verified_at=row.verified_at,
        tenant=tenant,
    )


class TenantRepository:
    """Tenant and domain queries against one session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, tenant_id: str) -> Tenant | None:
        row = await self.session.get(TenantTable, tenant_id)
        return _tenant_from_row(row) if row is not None else None

    async def get_by_slug(self, slug: str) -> Tenant | None:
        result = await self.session.execute(select(TenantTable).where(TenantTable.slug == slug))
        row = result.scalar_one_or_none()
        return _tenant_from_row(row) if row is not None else None

    async def list(self, limit: int | None = None) -> list[Tenant]:
        stmt = select(TenantTable).order_by(TenantTable.created_at, TenantTable.slug)
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self.session.execute(stmt)
        return [_tenant_from_row(row) for row in result.scalars()]

    async def slug_exists(self, slug: str) -> bool:
        result = await self.session.execute(
            select(TenantTable.id).where(TenantTable.slug == slug).limit(1)
        )
        return result.first() is not None

    async def create(self, tenant: Tenant) -> Tenant:
        row = TenantTable(
            id=tenant.id,
            name=tenant.name,
            slug=tenant.slug,
            email=tenant.email,
            database=tenant.database,
            data=tenant.data,
            settings=tenant.settings,
            created_at=tenant.created_at,
        )
        self.session.add(row)
        await self.session.flush()
        return tenant

    async def delete(self, tenant_id: str) -> bool:
        # Domains first; SQLite does not enforce ON DELETE CASCADE by default
        await self.session.execute(delete(DomainTable).where(DomainTable.tenant_id == tenant_id))
        result = await self.session.execute(delete(TenantTable).where(TenantTable.id == tenant_id))
        return bool(result.rowcount)

    async def get_domain(self, host: str) -> Domain | None:
        result = await self.session.execute(
            select(DomainTable)
            .where(DomainTable.domain == host.lower())
            .options(selectinload(DomainTable.tenant))
        )
        row = result.scalar_one_or_none()
        if row is None:
            return None
        return _domain_from_row(row, _tenant_from_row(row.tenant))

    async def add_domain(self, domain: Domain) -> Domain:
        row = DomainTable(
            domain=domain.domain.lower(),
            tenant_id=domain.tenant_id,
            is_primary=domain.is_primary,
            is_verified=domain.is_verified,
            verified_at=domain.verified_at,
        )
        self.session.add(row)
        await self.session.flush()
        return _domain_from_row(row, domain.tenant)

    async def domains_for(self, tenant_id: str) -> list[Domain]:
        result = await self.session.execute(
            select(DomainTable).where(DomainTable.tenant_id == tenant_id).order_by(DomainTable.id)
        )
        return [_domain_from_row(row) for row in result.scalars()]


class SqlTenantStore:
    """TenantStore backed by the central database.

    Args:
        session_scope: Factory returning a transactional session context,
            normally tessera.persistence.db.session_context
    """

    def __init__(self, session_scope: SessionScope) -> None:
        self._session_scope = session_scope

    async def find_domain_by_host(self, host: str) -> Domain | None:
        async with self._session_scope() as session:
            return await TenantRepository(session).get_domain(host)

    async def find_tenant_by_slug(self, slug: str) -> Tenant | None:
        async with self._session_scope() as session:
            return await TenantRepository(session).get_by_slug(slug)

    async def find_tenant_by_id(self, tenant_id: str) -> Tenant | None:
        async with self._session_scope() as session:
            return await TenantRepository(session).get_by_id(tenant_id)

    async def find_tenant(self, identifier: str) -> Tenant | None:
        """Find by id, then by slug."""
        async with self._session_scope() as session:
            repo = TenantRepository(session)
            return await repo.get_by_id(identifier) or await repo.get_by_slug(identifier)

    async def list_tenants(self) -> list[Tenant]:
        async with self._session_scope() as session:
            return await TenantRepository(session).list()

    async def slug_exists(self, slug: str) -> bool:
        async with self._session_scope() as session:
            return await TenantRepository(session).slug_exists(slug)

    async def create_tenant(self, tenant: Tenant, domains: list[Domain] | None = None) -> Tenant:
        """Insert a tenant and its domains in one transaction."""
        async with self._session_scope() as session:
            repo = TenantRepository(session)
            await repo.create(tenant)
            for domain in domains or []:
                await repo.add_domain(domain)
        return tenant

    async def add_domain(self, domain: Domain) -> Domain:
        async with self._session_scope() as session:
            return await TenantRepository(session).add_domain(domain)

    async def delete_tenant(self, tenant_id: str) -> bool:
        async with self._session_scope() as session:
            return await TenantRepository(session).delete(tenant_id)

    async def domains_for(self, tenant_id: str) -> list[Domain]:
        async with self._session_scope() as session:
            return await TenantRepository(session).domains_for(tenant_id)

