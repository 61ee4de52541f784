"""Transport contract for the event stream connection.

A transport wraps one physical connection to the generation server. The
ConnectionManager owns transports through this protocol only, so backends can
be swapped (SockJS over WebSocket in production, scripted in-memory transports
in tests).
"""

from collections.abc import AsyncIterator, Callable, Mapping
from typing import Protocol, runtime_checkable


class TransportError(Exception):
    """Raised when a transport fails to open, receive, or close."""


@runtime_checkable
class Transport(Protocol):
    """One physical stream connection.

    Lifecycle: ``open()`` once, iterate ``messages()`` until it ends (clean
    close) or raises TransportError (receive failure), then ``close()``.
    ``close()`` must be safe to call at any point and more than once.
    """

    @property
    def url(self) -> str:
        """The endpoint URL the transport was created for."""
        ...

    @property
    def transport_url(self) -> str | None:
        """The concrete URL of the underlying connection, if different."""
        ...

    async def open(self) -> None:
        """Open the connection.

        Raises:
            TransportError: If the connection cannot be established.
        """
        ...

    def messages(self) -> AsyncIterator[str]:
        """Yield inbound text payloads in delivery order."""
        ...

    async def close(self) -> None:
        """Close the connection."""
        ...

    def resolve_identity(self) -> str | None:
        """Return the identity the transport explicitly advertises, if any."""
        ...

    def identity_hints(self) -> Mapping[str, object]:
        """Return named properties that may carry a session-like token."""
        ...


TransportFactory = Callable[[], Transport]
