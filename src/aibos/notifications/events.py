"""In-process publish/subscribe for notification lifecycle events."""

from __future__ import annotations

import logging
import traceback
from collections import defaultdict
from typing import Any, Callable, DefaultDict, Union

from aibos.core.types import Clock, utc_now
from aibos.notifications.models import ErrorEvent, EventType, Notification, NotificationEvent

logger = logging.getLogger(__name__)

LifecycleEvent = Union[NotificationEvent, ErrorEvent]
EventHandler = Callable[[LifecycleEvent], None]


class EventBus:
    """Synchronous fan-out of lifecycle events to subscribed handlers.

    A handler that raises is logged and skipped; it never breaks the emitter
    or the remaining handlers. Events built here are stamped with ``clock``.
    """

    def __init__(self, clock: Clock = utc_now) -> None:
        self._clock = clock
        self._handlers: DefaultDict[EventType, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event_type: EventType | str, handler: EventHandler) -> None:
        handlers = self._handlers[EventType(event_type)]
        if handler not in handlers:
            handlers.append(handler)

    def unsubscribe(self, event_type: EventType | str, handler: EventHandler) -> bool:
        handlers = self._handlers.get(EventType(event_type))
        if not handlers or handler not in handlers:
            return False
        handlers.remove(handler)
        return True

    def emit(self, event: LifecycleEvent) -> None:
        for handler in list(self._handlers.get(event.type, ())):
            try:
                handler(event)
            except Exception:
                logger.exception("Handler %r failed for %s event", handler, event.type.value)

    def publish(
        self,
        event_type: EventType,
        notification: Notification | None = None,
        **fields: Any,
    ) -> NotificationEvent:
        """Build a lifecycle event stamped with the bus clock and emit it."""
        event = NotificationEvent(
            type=event_type,
            notification=notification,
            timestamp=self._clock(),
            **fields,
        )
        self.emit(event)
        return event

    def emit_error(
        self,
        error: BaseException | str,
        context: str,
        notification_id: str | None = None,
    ) -> ErrorEvent:
        """Log a pipeline error and publish it as an ``error`` event."""
        if isinstance(error, BaseException):
            message = str(error) or type(error).__name__
            stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        else:
            message, stack = error, None
        event = ErrorEvent(
            message=message,
            context=context,
            notification_id=notification_id,
            stack=stack,
            timestamp=self._clock(),
        )
        logger.error("[%s] %s (notification=%s)", context, message, notification_id)
        self.emit(event)
        return event

    def handler_count(self, event_type: EventType | str) -> int:
        return len(self._handlers.get(EventType(event_type), ()))
