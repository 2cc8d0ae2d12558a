"""Simple synchronous in-process event bus."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Callable

from slotbook.domain.events import BookingEvent

logger = logging.getLogger(__name__)

BookingEventHandler = Callable[[BookingEvent], None]


class EventBus:
    """Publish/subscribe bus for booking events.

    Handlers run synchronously on the publishing thread. A handler
    subscribed to a base class, ``BookingEvent`` included, receives every
    subclass event after the handlers of the concrete type.
    """

    def __init__(self) -> None:
        self._subscribers: dict[type[BookingEvent], list[BookingEventHandler]] = defaultdict(list)

    def subscribe(self, event_type: type[BookingEvent], handler: BookingEventHandler) -> None:
        self._subscribers[event_type].append(handler)

    def handlers_for(self, event: BookingEvent) -> list[BookingEventHandler]:
        handlers: list[BookingEventHandler] = []
        for cls in type(event).__mro__:
            handlers.extend(self._subscribers.get(cls, []))
            if cls is BookingEvent:
                break
        return handlers

    def publish(self, event: BookingEvent) -> None:
        handlers = self.handlers_for(event)
        logger.debug(
            "Publishing %s for booking %s to %d handler(s)",
            type(event).__name__,
            event.booking_id,
            len(handlers),
        )
        for handler in handlers:
            handler(event)
