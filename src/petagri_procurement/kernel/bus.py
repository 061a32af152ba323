"""
In-process event bus

Committed events are published synchronously to subscribers (notifications,
audit hooks, the CLI's verbose mode). Subscribers never influence the write
that produced the event: a failing subscriber is logged and skipped.
"""

from collections import defaultdict
from collections.abc import Callable

from petagri_procurement.kernel.events import Event
from petagri_procurement.kernel.logging import get_logger

logger = get_logger(__name__)

EventHandler = Callable[[Event], None]

# Subscribing with this key receives every event type
ALL_EVENTS = "*"


class InProcessBus:
    def __init__(self) -> None:
        self._event_handlers: defaultdict[str, list[EventHandler]] = defaultdict(list)

    def register_event_handler(self, event_type: str, handler: EventHandler) -> None:
        """Multiple handlers per event type are called in registration order"""
        self._event_handlers[event_type].append(handler)
        logger.debug(
            "Event handler registered",
            event_type=event_type,
            total_handlers=len(self._event_handlers[event_type]),
        )

    def unregister_event_handler(self, event_type: str, handler: EventHandler) -> None:
        handlers = self._event_handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def publish_event(self, event: Event) -> None:
        handlers = [
            *self._event_handlers.get(event.event_type, []),
            *self._event_handlers.get(ALL_EVENTS, []),
        ]
        if not handlers:
            return

        logger.debug(
            "Publishing event",
            event_type=event.event_type,
            event_id=event.event_id,
            stream_id=event.stream_id,
            handler_count=len(handlers),
        )
        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                logger.error(
                    "Event handler failed",
                    event_type=event.event_type,
                    event_id=event.event_id,
                    stream_id=event.stream_id,
                    error=str(e),
                    exc_info=True,
                )

    def publish_events(self, events: list[Event]) -> None:
        for event in events:
            self.publish_event(event)

    def get_event_types(self) -> list[str]:
        return [t for t, handlers in self._event_handlers.items() if handlers]

    def clear(self) -> None:
        self._event_handlers.clear()
