"""Tenant lifecycle events for Tessera.

Provides:
- TenantEvent and EventType: what happened to which tenant
- EventBus / LocalEventBus: in-process publish/subscribe with inline dispatch
"""

from tessera.events.bus import EventBus, EventHandler, LocalEventBus
from tessera.events.schemas import EventType, TenantEvent

__all__ = [
    "EventBus",
    "EventHandler",
    "LocalEventBus",
    "EventType",
    "TenantEvent",
]
