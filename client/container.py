"""Composition root: build and hold the stream client's long-lived objects.

There is no global client instance. Each ClientContext owns one dispatcher,
one connection manager, one API client and one generation view; the UI
surface and the tests construct their own.
"""

from collections.abc import Callable
from dataclasses import dataclass

import httpx
import structlog

from config import Settings
from events import EventDispatcher
from remote import ForgeApiClient
from session import (
    EventReconciler,
    GenerationState,
    SessionController,
    SessionSubscriber,
)
from transport import ConnectionManager, SockJSTransport, Transport, TransportFactory

logger = structlog.get_logger(__name__)


@dataclass
class ClientContext:
    """Container object attached to the UI surface."""

    settings: Settings
    dispatcher: EventDispatcher
    connection: ConnectionManager
    api: ForgeApiClient
    subscriber: SessionSubscriber
    state: GenerationState
    reconciler: EventReconciler
    controller: SessionController
    detach_reconciler: Callable[[], None]

    async def aclose(self) -> None:
        """Disconnect the stream and release the HTTP client."""
        self.detach_reconciler()
        await self.connection.disconnect()
        await self.api.aclose()
        logger.info("client_context_closed")


def build_client_context(
    settings: Settings,
    *,
    transport_factory: TransportFactory | None = None,
    http_transport: httpx.AsyncBaseTransport | None = None,
) -> ClientContext:
    """Construct runtime dependencies in one place.

    Args:
        settings: Application settings.
        transport_factory: Overrides the SockJS transport (used by tests).
        http_transport: Overrides the httpx transport (used by tests).
    """
    if transport_factory is None:

        def transport_factory() -> Transport:
            return SockJSTransport(
                settings.stream_url,
                open_timeout=settings.connect_timeout_seconds,
            )

    dispatcher = EventDispatcher()
    connection = ConnectionManager(
        dispatcher,
        transport_factory,
        base_delay=settings.reconnect_base_delay_seconds,
        max_attempts=settings.max_reconnect_attempts,
    )
    api = ForgeApiClient(
        settings.api_base_url,
        timeout=settings.http_timeout_seconds,
        transport=http_transport,
    )
    state = GenerationState()
    reconciler = EventReconciler(state)
    subscriber = SessionSubscriber(connection, api)
    controller = SessionController(connection, subscriber, api, reconciler)

    detach_reconciler = dispatcher.on_event(reconciler.receive)

    logger.info(
        "client_context_built",
        stream_url=settings.stream_url,
        api_base_url=settings.api_base_url,
    )
    return ClientContext(
        settings=settings,
        dispatcher=dispatcher,
        connection=connection,
        api=api,
        subscriber=subscriber,
        state=state,
        reconciler=reconciler,
        controller=controller,
        detach_reconciler=detach_reconciler,
    )
