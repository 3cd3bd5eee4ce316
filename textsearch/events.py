"""Event sink for index and query lifecycle notifications."""

import logging
import threading
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Lifecycle events emitted by the engine."""

    DOCUMENT_INDEXED = "search.document_indexed"
    DOCUMENT_DELETED = "search.document_deleted"
    BULK_INDEXED = "search.bulk_indexed"
    REINDEXED = "search.reindexed"
    QUERY_EXECUTED = "search.query_executed"


@dataclass
class Event:
    """An event that occurred in the engine."""

    type: EventType
    timestamp: datetime
    data: dict[str, Any]

    @property
    def document_key(self) -> tuple[str, str] | None:
        """``(type, id)`` for document events."""
        if "type" in self.data and "id" in self.data:
            return (self.data["type"], self.data["id"])
        return None


class EventBus:
    """Simple event bus for publishing and subscribing to events.

    Safe to share between threads; handlers run outside the lock.
    """

    def __init__(self, history_limit: int = 1000):
        self._subscribers: dict[EventType, list[Callable[[Event], None]]] = {}
        self._history: deque[Event] = deque(maxlen=history_limit)
        self._lock = threading.RLock()

    def subscribe(
        self, event_type: EventType, handler: Callable[[Event], None]
    ) -> None:
        """Subscribe to events of a specific type."""
        with self._lock:
            self._subscribers.setdefault(event_type, []).append(handler)

    def unsubscribe(
        self, event_type: EventType, handler: Callable[[Event], None]
    ) -> None:
        """Unsubscribe from events."""
        with self._lock:
            if event_type in self._subscribers:
                self._subscribers[event_type].remove(handler)

    def publish(self, event: Event) -> None:
        """Publish an event to all subscribers.

        A failing subscriber is logged and does not stop delivery to the rest.
        """
        with self._lock:
            self._history.append(event)
            handlers = list(self._subscribers.get(event.type, []))

        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception(f"Subscriber failed for {event.type.value}")

    def emit(self, event_type: EventType, **data: Any) -> None:
        """Build and publish an event."""
        self.publish(Event(type=event_type, timestamp=datetime.now(), data=data))

    def get_history(
        self, event_type: EventType | None = None, limit: int = 100
    ) -> list[Event]:
        """Get event history."""
        with self._lock:
            history = list(self._history)

        if event_type:
            history = [e for e in history if e.type == event_type]

        return history[-limit:]

    def clear_history(self) -> None:
        with self._lock:
            self._history.clear()
