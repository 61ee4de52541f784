"""SockJS-over-WebSocket transport.

The generation server exposes its event stream as a SockJS endpoint. SockJS
clients pick a server id and a session token, connect to
``<endpoint>/<server-id>/<session-token>/websocket`` and exchange framed text:

- ``o``: connection opened
- ``h``: heartbeat
- ``a["msg", ...]``: one or more messages
- ``m"msg"``: a single message
- ``c[code, "reason"]``: connection closed by the server

The session token in the URL is the id the server uses for this connection,
which is what the identity chain extracts from ``transport_url``.
"""

import asyncio
import contextlib
import json
import random
import string
from collections.abc import AsyncIterator, Mapping
from dataclasses import dataclass, field
from urllib.parse import urlsplit, urlunsplit

import structlog
from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, ConnectionClosedError, WebSocketException

from transport.base import TransportError

logger = structlog.get_logger(__name__)

_TOKEN_ALPHABET = string.ascii_lowercase + string.digits


@dataclass(frozen=True)
class SockJSFrame:
    """A decoded SockJS frame.

    Attributes:
        kind: Frame type letter (o, h, a, m, c).
        messages: Message payloads carried by ``a`` and ``m`` frames.
        close_code: Close code carried by a ``c`` frame.
        close_reason: Close reason carried by a ``c`` frame.
    """

    kind: str
    messages: list[str] = field(default_factory=list)
    close_code: int | None = None
    close_reason: str | None = None


def _as_text(item: object) -> str:
    return item if isinstance(item, str) else json.dumps(item)


def decode_frame(raw: str) -> SockJSFrame:
    """Decode one SockJS frame.

    Args:
        raw: The raw WebSocket text message.

    Returns:
        The decoded frame.

    Raises:
        ValueError: If the frame is empty, has an unknown type, or carries
            an undecodable body.
    """
    if not raw:
        raise ValueError("Empty SockJS frame")

    kind, body = raw[0], raw[1:]
    if kind in ("o", "h"):
        return SockJSFrame(kind=kind)

    try:
        decoded = json.loads(body)
    except json.JSONDecodeError as e:
        raise ValueError(f"Undecodable SockJS '{kind}' frame body") from e

    if kind == "a":
        if not isinstance(decoded, list):
            raise ValueError("SockJS 'a' frame body must be an array")
        return SockJSFrame(kind=kind, messages=[_as_text(item) for item in decoded])
    if kind == "m":
        return SockJSFrame(kind=kind, messages=[_as_text(decoded)])
    if kind == "c":
        code = reason = None
        if isinstance(decoded, list):
            code = decoded[0] if decoded else None
            reason = decoded[1] if len(decoded) > 1 else None
        return SockJSFrame(
            kind=kind,
            close_code=code if isinstance(code, int) else None,
            close_reason=reason if isinstance(reason, str) else None,
        )

    raise ValueError(f"Unknown SockJS frame type {kind!r}")


def _websocket_base(url: str) -> str:
    parts = urlsplit(url)
    scheme = {"http": "ws", "https": "wss"}.get(parts.scheme, parts.scheme)
    return urlunsplit((scheme, parts.netloc, parts.path.rstrip("/"), "", ""))


class SockJSTransport:
    """Transport speaking the SockJS WebSocket protocol via ``websockets``.

    Attributes:
        server_id: Three-digit SockJS server id chosen for this connection.
        session_token: Eight-character SockJS session token.
    """

    def __init__(
        self,
        url: str,
        *,
        open_timeout: float = 10.0,
        rng: random.Random | None = None,
    ) -> None:
        """Create a transport for a SockJS endpoint.

        Args:
            url: The SockJS endpoint (http/https/ws/wss scheme).
            open_timeout: Seconds to wait for the handshake and open frame.
            rng: Random source for the server id and session token.
        """
        chooser = rng or random.Random()
        self._url = url
        self._open_timeout = open_timeout
        self.server_id = f"{chooser.randint(0, 999):03d}"
        self.session_token = "".join(chooser.choices(_TOKEN_ALPHABET, k=8))
        self._connection: ClientConnection | None = None

    @property
    def url(self) -> str:
        return self._url

    @property
    def transport_url(self) -> str:
        return (
            f"{_websocket_base(self._url)}/{self.server_id}/"
            f"{self.session_token}/websocket"
        )

    async def open(self) -> None:
        """Perform the WebSocket handshake and wait for the SockJS open frame.

        Raises:
            TransportError: On handshake failure, timeout, or if the server
                answers with anything other than an open frame.
        """
        try:
            self._connection = await connect(
                self.transport_url,
                open_timeout=self._open_timeout,
            )
            first = await asyncio.wait_for(
                self._connection.recv(),
                timeout=self._open_timeout,
            )
        except (OSError, TimeoutError, WebSocketException) as e:
            await self.close()
            raise TransportError(f"Failed to open {self.transport_url}: {e}") from e

        try:
            frame = decode_frame(first if isinstance(first, str) else first.decode("utf-8"))
        except (ValueError, UnicodeDecodeError) as e:
            await self.close()
            raise TransportError(f"Invalid SockJS handshake frame: {e}") from e

        if frame.kind != "o":
            await self.close()
            if frame.kind == "c":
                raise TransportError(
                    f"Server refused connection: {frame.close_code} {frame.close_reason}"
                )
            raise TransportError(f"Expected SockJS open frame, got {frame.kind!r}")

        logger.debug(
            "sockjs_opened",
            transport_url=self.transport_url,
            session_token=self.session_token,
        )

    async def messages(self) -> AsyncIterator[str]:
        """Yield message payloads until the server or client closes.

        Raises:
            TransportError: If the connection drops abnormally.
        """
        if self._connection is None:
            raise TransportError("Transport is not open")

        try:
            async for raw in self._connection:
                text = raw if isinstance(raw, str) else raw.decode("utf-8", errors="replace")
                try:
                    frame = decode_frame(text)
                except ValueError as e:
                    logger.warning("sockjs_frame_dropped", error=str(e))
                    continue

                if frame.kind == "c":
                    logger.info(
                        "sockjs_closed_by_server",
                        code=frame.close_code,
                        reason=frame.close_reason,
                    )
                    return
                for message in frame.messages:
                    yield message
        except ConnectionClosedError as e:
            raise TransportError(f"Connection lost: {e}") from e

    async def close(self) -> None:
        connection, self._connection = self._connection, None
        if connection is None:
            return
        with contextlib.suppress(ConnectionClosed):
            await connection.close()

    def resolve_identity(self) -> str | None:
        # SockJS never announces the server-side id over the wire
        return None

    def identity_hints(self) -> Mapping[str, object]:
        return {
            "server_id": self.server_id,
            "session_token": self.session_token,
        }
