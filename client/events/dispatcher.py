"""In-process event dispatcher for stream events and connection status.

This module provides an EventDispatcher class that fans out every inbound
StreamEvent and every ConnectionStatus change to the handlers registered by
the reconciler, the session controller, and UI relays.

Dispatch is synchronous and runs on the event loop that delivered the frame:
- Handlers run in registration order for each event
- A failing handler is logged and skipped, never aborting dispatch
- Each registration returns its own detach function
"""

import itertools
from collections.abc import Callable
from typing import Generic, TypeVar

import structlog

from events.types import ConnectionStatus, StreamEvent

logger = structlog.get_logger(__name__)

T = TypeVar("T")

Unsubscribe = Callable[[], None]
EventHandler = Callable[[StreamEvent], None]
StatusHandler = Callable[[ConnectionStatus], None]


class _HandlerRegistry(Generic[T]):
    """Ordered handler list keyed by registration token.

    Tokens make registrations independently detachable even when the same
    function is registered more than once.
    """

    def __init__(self, channel: str) -> None:
        self._channel = channel
        self._handlers: dict[int, Callable[[T], None]] = {}
        self._tokens = itertools.count()

    def add(self, handler: Callable[[T], None]) -> Unsubscribe:
        token = next(self._tokens)
        self._handlers[token] = handler
        logger.debug(
            "handler_registered",
            channel=self._channel,
            handler_count=len(self._handlers),
        )

        def unsubscribe() -> None:
            if self._handlers.pop(token, None) is not None:
                logger.debug(
                    "handler_unregistered",
                    channel=self._channel,
                    handler_count=len(self._handlers),
                )

        return unsubscribe

    def emit(self, item: T) -> None:
        # Snapshot so handlers may detach themselves (or others) mid-dispatch
        for handler in list(self._handlers.values()):
            try:
                handler(item)
            except Exception as e:
                logger.error(
                    "handler_failed",
                    channel=self._channel,
                    handler=getattr(handler, "__qualname__", repr(handler)),
                    error=str(e),
                    exc_info=True,
                )

    def __len__(self) -> int:
        return len(self._handlers)


class EventDispatcher:
    """Synchronous pub/sub fan-out for one stream client.

    The dispatcher is owned by a ClientContext; there is no global instance.

    Usage:
        >>> dispatcher = EventDispatcher()
        >>> detach = dispatcher.on_event(lambda event: print(event.type))
        >>> dispatcher.emit_event(event)
        >>> detach()
    """

    def __init__(self) -> None:
        """Initialize a dispatcher with no handlers."""
        self._event_handlers: _HandlerRegistry[StreamEvent] = _HandlerRegistry("event")
        self._status_handlers: _HandlerRegistry[ConnectionStatus] = _HandlerRegistry(
            "status"
        )

    def on_event(self, handler: EventHandler) -> Unsubscribe:
        """Register a handler for inbound stream events.

        Args:
            handler: Callable invoked with each StreamEvent.

        Returns:
            A function that detaches this registration. Calling it more than
            once is a no-op.
        """
        return self._event_handlers.add(handler)

    def on_status_change(self, handler: StatusHandler) -> Unsubscribe:
        """Register a handler for connection status changes.

        Args:
            handler: Callable invoked with each ConnectionStatus.

        Returns:
            A function that detaches this registration.
        """
        return self._status_handlers.add(handler)

    def emit_event(self, event: StreamEvent) -> None:
        """Deliver an event to every registered event handler."""
        self._event_handlers.emit(event)

    def emit_status(self, status: ConnectionStatus) -> None:
        """Deliver a status change to every registered status handler."""
        self._status_handlers.emit(status)

    def handler_counts(self) -> dict[str, int]:
        """Return the number of registrations per channel for diagnostics."""
        return {
            "event": len(self._event_handlers),
            "status": len(self._status_handlers),
        }
