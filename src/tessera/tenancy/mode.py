"""Tenancy isolation modes."""

from __future__ import annotations

from enum import Enum


class TenancyMode(str, Enum):
    """How tenant data is isolated.

    SINGLE: all tenants share one database, rows scoped by tenant_id.
    MULTI: each tenant owns a dedicated database reached via its subdomain.
    """

    SINGLE = "single"
    MULTI = "multi"

    @classmethod
    def default(cls) -> TenancyMode:
        return cls.SINGLE

    @classmethod
    def from_value(cls, value: str | TenancyMode | None) -> TenancyMode:
        """Parse a configured mode, accepting "multi-database" style aliases."""
        if isinstance(value, TenancyMode):
            return value
        if not value:
            return cls.default()
        normalized = value.strip().lower().replace("_", "-")
        if normalized in {"multi", "multi-database", "multidatabase", "multi-db"}:
            return cls.MULTI
        if normalized in {"single", "single-database", "shared"}:
            return cls.SINGLE
        raise ValueError(f"Unsupported tenancy mode: {value!r}. Supported: single, multi.")

    def is_multi_database(self) -> bool:
        return self is TenancyMode.MULTI

    def is_single(self) -> bool:
        return self is TenancyMode.SINGLE

    @property
    def label(self) -> str:
        return "Multi-Database" if self.is_multi_database() else "Single Database"

    @property
    def description(self) -> str:
        if self.is_multi_database():
            return "Each tenant has their own database with complete data isolation."
        return "All tenants share the same database with row-level isolation using tenant_id."
