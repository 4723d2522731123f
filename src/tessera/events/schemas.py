"""Tenant lifecycle events.

Every provisioning step reports its outcome as an event. Success events
trigger the next step; failure events carry the causing error and end the
chain for that tenant.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from tessera.tenancy.models import Tenant


class EventType(str, Enum):
    """Type of tenant lifecycle event."""

    TENANT_CREATED = "tenant.created"
    TENANT_DELETED = "tenant.deleted"
    DATABASE_CREATED = "tenant.database_created"
    DATABASE_CREATION_FAILED = "tenant.database_creation_failed"
    MIGRATED = "tenant.migrated"
    MIGRATION_FAILED = "tenant.migration_failed"
    SEEDED = "tenant.seeded"
    SEEDING_FAILED = "tenant.seeding_failed"
    DATABASE_DELETED = "tenant.database_deleted"
    DATABASE_DELETION_FAILED = "tenant.database_deletion_failed"

    @property
    def is_failure(self) -> bool:
        return self.value.endswith("_failed")


@dataclass(frozen=True, slots=True)
class TenantEvent:
    """A lifecycle event for one tenant.

    Attributes:
        event_type: What happened
        tenant: The tenant it happened to
        error: Causing error for *_failed events
        options: Step options (migration options, keep_database on delete)
    """

    event_type: EventType
    tenant: Tenant
    error: BaseException | None = None
    options: dict[str, Any] = field(default_factory=dict)
    event_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_failure(self) -> bool:
        return self.event_type.is_failure

    def to_dict(self) -> dict[str, Any]:
        """Serialize for logs; the error is reduced to its type and message."""
        return {
            "event_id": self.event_id,
            "event_type": self.event_type.value,
            "tenant_id": self.tenant.id,
            "tenant_slug": self.tenant.slug,
            "error": f"{type(self.error).__name__}: {self.error}" if self.error else None,
            "options": self.options,
            "timestamp": self.timestamp.isoformat(),
        }
