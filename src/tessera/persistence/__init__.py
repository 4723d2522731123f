"""Persistence layer for Tessera.

This module provides:
- Async engine and session factory for the central database
- SQLAlchemy ORM models for tenants and domains
- Repository and TenantStore implementation
"""

from tessera.persistence.db import close_db, get_engine, get_session, init_db, session_context
from tessera.persistence.repositories import SqlTenantStore, TenantRepository
from tessera.persistence.tables import Base, DomainTable, TenantTable

__all__ = [
    # DB
    "get_engine",
    "get_session",
    "session_context",
    "init_db",
    "close_db",
    # Tables
    "Base",
    "TenantTable",
    "DomainTable",
    # Repositories
    "TenantRepository",
    "SqlTenantStore",
]
