"""Event system for the LeoForge stream client.

This package provides the event model pushed by the generation server and the
in-process dispatcher that fans those events out to client components.

Key Components:
    - EventType: Enum of all server event types
    - StreamEvent: Pydantic model for one server-pushed event
    - ConnectionStatus: State of the transport connection
    - EventDispatcher: Synchronous pub/sub for events and status changes
    - parse_stream_event: JSON frame parser raising MalformedEventError

Usage:
    >>> from events import EventDispatcher, parse_stream_event
    >>>
    >>> dispatcher = EventDispatcher()
    >>> detach = dispatcher.on_event(lambda event: print(event.type.value))
    >>> dispatcher.emit_event(parse_stream_event(frame))
    >>> detach()

Event Flow:
    1. The transport delivers a JSON frame to the ConnectionManager
    2. The frame is parsed into a StreamEvent (malformed frames are dropped)
    3. EventDispatcher.emit_event() fans it out in registration order
    4. The EventReconciler folds it into the event log and artifact
"""

from events.dispatcher import (
    EventDispatcher,
    EventHandler,
    StatusHandler,
    Unsubscribe,
)
from events.types import (
    ConnectionStatus,
    EventKey,
    EventType,
    MalformedEventError,
    StreamEvent,
    parse_stream_event,
)

__all__ = [
    # Event types
    "EventType",
    "EventKey",
    "StreamEvent",
    "ConnectionStatus",
    "MalformedEventError",
    "parse_stream_event",
    # Dispatcher
    "EventDispatcher",
    "EventHandler",
    "StatusHandler",
    "Unsubscribe",
]
