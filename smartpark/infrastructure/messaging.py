# File: smartpark/infrastructure/messaging.py
"""
Messaging Infrastructure for SmartPark

In-process publish/subscribe for booking lifecycle events. The billing
engine publishes a domain event after every successful transition;
handlers turn those into side effects (audit logging, test recording).

Handler failures are logged and never propagate back into the engine, so
a broken subscriber cannot undo or block a state transition.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Iterable
import logging

from ..domain.models import DomainEvent

WILDCARD = "*"


# ============================================================================
# EVENT HANDLERS
# ============================================================================

class EventHandler(ABC):
    """Base class for synchronous event handlers"""

    @abstractmethod
    def handle(self, event: DomainEvent) -> None:
        pass

    def can_handle(self, event: DomainEvent) -> bool:
        return True


class AuditLogHandler(EventHandler):
    """Writes every lifecycle event to the audit logger"""

    def __init__(self, logger_name: str = "smartpark.audit"):
        self.logger = logging.getLogger(logger_name)

    def handle(self, event: DomainEvent) -> None:
        payload = event.to_dict()
        self.logger.info(f"{payload['event_type']} {payload['data']}")


class EventRecorder(EventHandler):
    """Keeps published events in memory, optionally filtered by type"""

    def __init__(self, event_types: Optional[Iterable[str]] = None):
        self.event_types = set(event_types) if event_types else None
        self.events: List[DomainEvent] = []

    def can_handle(self, event: DomainEvent) -> bool:
        return self.event_types is None or event.event_type in self.event_types

    def handle(self, event: DomainEvent) -> None:
        self.events.append(event)

    def types(self) -> List[str]:
        return [event.event_type for event in self.events]

    def clear(self) -> None:
        self.events.clear()


# ============================================================================
# EVENT BUS
# ============================================================================

class EventBus:
    """
    In-memory event bus for intra-process event publishing

    Handlers subscribe to an event type string (e.g. "booking.created")
    or to "*" for every event.
    """

    def __init__(self):
        self._subscribers: Dict[str, List[EventHandler]] = {}
        self._logger = logging.getLogger(self.__class__.__name__)

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        """Subscribe to events of a specific type"""
        handlers = self._subscribers.setdefault(event_type, [])
        if handler not in handlers:
            handlers.append(handler)
            self._logger.debug(f"Subscribed {handler.__class__.__name__} to {event_type}")

    def unsubscribe(self, event_type: str, handler: EventHandler) -> None:
        """Unsubscribe handler from events"""
        handlers = self._subscribers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)
            self._logger.debug(f"Unsubscribed {handler.__class__.__name__} from {event_type}")

    def publish(self, event: DomainEvent) -> None:
        """Publish an event to all matching subscribers"""
        self._logger.debug(f"Publishing event: {event.event_type} (ID: {event.event_id})")

        handlers = self._subscribers.get(event.event_type, []) + self._subscribers.get(WILDCARD, [])
        for handler in handlers:
            if not handler.can_handle(event):
                continue
            try:
                handler.handle(event)
            except Exception as e:
                self._logger.error(
                    f"Error handling event {event.event_type} with {handler.__class__.__name__}: {e}"
                )

    def clear_subscribers(self) -> None:
        """Clear all subscribers (for testing)"""
        self._subscribers.clear()
