"""Simple in-process event bus for decoupled notification delivery."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable
from typing import Any

EventHandler = Callable[[dict[str, Any]], None]

WILDCARD = "*"


class EventBus:
    """Dispatches notification payloads to subscribers by event type."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        """Register a callback for an event type, or '*' for every event."""
        self._handlers[event_type].append(handler)

    def has_subscribers(self, event_type: str) -> bool:
        return bool(self._handlers.get(event_type) or self._handlers.get(WILDCARD))

    def emit(self, event_type: str, payload: dict[str, Any]) -> int:
        """Emit an event to all subscribers and return how many were called.

        Handler errors propagate so the outbox can keep the event pending.
        """
        handlers = [*self._handlers.get(event_type, []), *self._handlers.get(WILDCARD, [])]
        for handler in handlers:
            handler({"event_type": event_type, **payload})
        return len(handlers)
