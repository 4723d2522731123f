"""Cache key schema for tenant lookups.

Key format: {prefix}domain_{full_domain}

Where:
- prefix: cache.prefix from configuration ("tessera_tenant_" by default)
- full_domain: fully-qualified host, e.g. "acme.example.com"
"""

from __future__ import annotations


class CacheKeys:
    """Cache key generator following consistent naming convention."""

    PREFIX = "tessera_tenant_"

    @classmethod
    def domain(cls, full_domain: str, prefix: str | None = None) -> str:
        """Key for the tenant resolved from a fully-qualified host."""
        return f"{cls.PREFIX if prefix is None else prefix}domain_{full_domain.lower()}"
