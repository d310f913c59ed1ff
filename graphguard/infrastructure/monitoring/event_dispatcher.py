"""In-process dispatcher for domain events.

Every event is logged at DEBUG; subscribers (e.g. a status collector or a
test) receive it synchronously in subscription order.
"""

import logging
from typing import Callable, List

from graphguard.domain.events.api_events import DomainEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[DomainEvent], None]


class EventDispatcher:
    """Fan-out of domain events to registered handlers."""

    def __init__(self):
        self._handlers: List[EventHandler] = []

    def subscribe(self, handler: EventHandler) -> None:
        self._handlers.append(handler)

    def unsubscribe(self, handler: EventHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    def dispatch(self, event: DomainEvent) -> None:
        logger.debug(f"EVENT: {event}")
        for handler in list(self._handlers):
            try:
                handler(event)
            except Exception as e:
                # A broken subscriber must not break the Graph call path
                logger.error(f"Event handler {handler!r} failed for {type(event).__name__}: {e}", exc_info=True)


class EventRecorder:
    """Subscriber that keeps every event it sees; handy for status output and tests."""

    def __init__(self, limit: int = 200):
        self.limit = limit
        self.events: List[DomainEvent] = []

    def __call__(self, event: DomainEvent) -> None:
        self.events.append(event)
        if len(self.events) > self.limit:
            del self.events[0]

    def of_type(self, event_type: type) -> List[DomainEvent]:
        return [e for e in self.events if isinstance(e, event_type)]
