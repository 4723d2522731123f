"""SQLAlchemy ORM models for the central database.

Tenants and their domains live in the central (shared) database. Per-tenant
schemas are owned by the tenant migrations, not by these models.
Table names come from configuration (TESSERA_TENANTS_TABLE /
TESSERA_DOMAINS_TABLE).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import uuid4

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from tessera.config import settings

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite, MySQL)
JsonDocument = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class TenantTable(Base):
    """Tenant records."""

    __tablename__ = settings.tenants_table

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: uuid4().hex)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Tenant database name; None falls back to slug
    database: Mapped[str | None] = mapped_column(String(255), nullable=True)

    data: Mapped[dict[str, Any]] = mapped_column(JsonDocument, nullable=False, default=dict)
    settings: Mapped[dict[str, Any]] = mapped_column(JsonDocument, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    domains: Mapped[list[DomainTable]] = relationship(
        back_populates="tenant",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class DomainTable(Base):
    """Fully-qualified hosts mapped to tenants (many-to-one)."""

    __tablename__ = settings.domains_table

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    domain: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    tenant_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey(f"{settings.tenants_table}.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    tenant: Mapped[TenantTable] = relationship(back_populates="domains")
