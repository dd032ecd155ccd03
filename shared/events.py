"""
Typed change notifications.

Each AssetLibrary owns its own EventBus; there is no process-wide listener
registry. Subscribers register for an event class and receive instances of
that class (or its subclasses).
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Tuple, Type

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Event:
    """Base class for all events."""


@dataclass(frozen=True)
class CacheChanged(Event):
    """The local asset cache was written."""
    reason: str
    asset_ids: Tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class AssetDeleted(Event):
    """An asset was removed from the remote store and the cache."""
    asset_id: str
    key: str


@dataclass(frozen=True)
class SyncCompleted(Event):
    """A reconciliation run finished."""
    outcome: str
    added: int
    removed: int
    refreshed: int
    total: int


Handler = Callable[[Event], None]


class EventBus:
    """Dispatches events to handlers subscribed by event type."""

    def __init__(self):
        self._handlers: Dict[Type[Event], List[Handler]] = {}
        self._lock = threading.Lock()

    def subscribe(self, event_type: Type[Event], handler: Handler) -> Callable[[], None]:
        """
        Register a handler for an event type.

        Returns:
            A function that removes the subscription
        """
        with self._lock:
            handlers = self._handlers.setdefault(event_type, [])
            if handler not in handlers:
                handlers.append(handler)

        def unsubscribe():
            self.unsubscribe(event_type, handler)

        return unsubscribe

    def unsubscribe(self, event_type: Type[Event], handler: Handler) -> None:
        with self._lock:
            handlers = self._handlers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

    def publish(self, event: Event) -> None:
        """Deliver an event; a failing handler does not stop the others."""
        with self._lock:
            targets = [
                h for event_type, handlers in self._handlers.items()
                if isinstance(event, event_type)
                for h in handlers
            ]
        for handler in targets:
            try:
                handler(event)
            except Exception:
                logger.exception("Error in %s handler", type(event).__name__)
