"""Event bus for tenant lifecycle events.

Handlers run inline, in subscription order, inside publish(). A handler that
publishes another event therefore completes that event's dispatch before
publish() returns, which keeps one tenant's lifecycle causally ordered.
Handler exceptions propagate to the publisher.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable

from tessera.events.schemas import EventType, TenantEvent

logger = logging.getLogger(__name__)


EventHandler = Callable[[TenantEvent], Awaitable[None]]


class EventBus(ABC):
    """Abstract event bus interface."""

    @abstractmethod
    async def publish(self, event: TenantEvent) -> None:
        """Publish an event to the bus."""
        pass

    @abstractmethod
    def subscribe(self, event_type: EventType, handler: EventHandler) -> None:
        """Subscribe a handler to one event type."""
        pass

    @abstractmethod
    def subscribe_all(self, handler: EventHandler) -> None:
        """Subscribe a handler to every event."""
        pass


class LocalEventBus(EventBus):
    """In-process event bus with synchronous dispatch."""

    def __init__(self) -> None:
        # (event type or None for all, handler), in subscription order
        self._subscriptions: list[tuple[EventType | None, EventHandler]] = []

    def subscribe(self, event_type: EventType, handler: EventHandler) -> None:
        self._subscriptions.append((event_type, handler))

    def subscribe_all(self, handler: EventHandler) -> None:
        self._subscriptions.append((None, handler))

    def unsubscribe(self, handler: EventHandler) -> None:
        self._subscriptions = [s for s in self._subscriptions if s[1] is not handler]

    def handlers_for(self, event_type: EventType) -> list[EventHandler]:
        return [h for t, h in self._subscriptions if t is None or t == event_type]

    async def publish(self, event: TenantEvent) -> None:
        if event.is_failure:
            logger.warning(
                "%s for tenant %s: %s", event.event_type.value, event.tenant.slug, event.error
            )
        else:
            logger.info("%s for tenant %s", event.event_type.value, event.tenant.slug)

        for handler in self.handlers_for(event.event_type):
            await handler(event)
