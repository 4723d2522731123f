"""Tenant and Domain records.

Both live in the central database. These dataclasses are what the rest of
the package passes around; the SQLAlchemy tables in tessera.persistence.tables
are mapped to and from them by the repository.
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

_SLUG_STRIP = re.compile(r"[^\w\s-]")
_SLUG_SEPARATORS = re.compile(r"[-\s_]+")


def slugify(value: str, separator: str = "-") -> str:
    """Convert a display name into a URL- and subdomain-safe slug.

    "Acme Corp." -> "acme-corp"
    """
    normalized = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    normalized = _SLUG_STRIP.sub("", normalized).strip().lower()
    return _SLUG_SEPARATORS.sub(separator, normalized).strip(separator)


def _parse_datetime(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


@dataclass
class Tenant:
    """A customer/organization with its own data partition."""

    name: str
    slug: str = ""
    id: str = field(default_factory=lambda: uuid4().hex)
    email: str | None = None
    database: str | None = None
    data: dict[str, Any] = field(default_factory=dict)
    settings: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __post_init__(self) -> None:
        if not self.slug and self.name:
            self.slug = slugify(self.name)

    def database_name(self) -> str:
        """Name of the tenant's dedicated database (falls back to the slug)."""
        return self.database or self.slug

    def get_setting(self, key: str, default: Any = None) -> Any:
        return self.settings.get(key, default)

    @property
    def display_name(self) -> str:
        return self.name or self.slug or "Unnamed Tenant"

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "email": self.email,
            "database": self.database,
            "data": self.data,
            "settings": self.settings,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Tenant:
        created_at = _parse_datetime(data.get("created_at")) or datetime.now(UTC)
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            slug=data.get("slug", ""),
            email=data.get("email"),
            database=data.get("database"),
            data=data.get("data") or {},
            settings=data.get("settings") or {},
            created_at=created_at,
        )


@dataclass
class Domain:
    """Maps a fully-qualified host to a tenant."""

    domain: str
    tenant_id: str
    id: int | None = None
    is_primary: bool = False
    is_verified: bool = False
    verified_at: datetime | None = None
    tenant: Tenant | None = None

    def is_subdomain_of(self, base_domain: str) -> bool:
        return self.domain.endswith(f".{base_domain}")

    def subdomain(self, base_domain: str) -> str | None:
        """Subdomain part relative to base_domain, or None if not beneath it."""
        if not self.is_subdomain_of(base_domain):
            return None
        return self.domain[: -len(base_domain) - 1]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "domain": self.domain,
            "tenant_id": self.tenant_id,
            "is_primary": self.is_primary,
            "is_verified": self.is_verified,
            "verified_at": self.verified_at.isoformat() if self.verified_at else None,
        }
