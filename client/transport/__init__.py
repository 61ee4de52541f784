"""Stream transport layer.

Key Components:
    - Transport: Protocol implemented by every transport backend
    - SockJSTransport: SockJS-over-WebSocket backend for the generation server
    - ConnectionManager: Single-connection lifecycle and reconnect policy
    - resolve_transport_identity: Fallback chain producing the connection id
"""

from transport.base import Transport, TransportError, TransportFactory
from transport.connection import MAX_ATTEMPTS_REACHED, ConnectionManager
from transport.identity import (
    DEFAULT_IDENTITY_CHAIN,
    fallback_identity,
    resolve_transport_identity,
)
from transport.sockjs import SockJSFrame, SockJSTransport, decode_frame

__all__ = [
    "Transport",
    "TransportError",
    "TransportFactory",
    "ConnectionManager",
    "MAX_ATTEMPTS_REACHED",
    "DEFAULT_IDENTITY_CHAIN",
    "fallback_identity",
    "resolve_transport_identity",
    "SockJSFrame",
    "SockJSTransport",
    "decode_frame",
]
