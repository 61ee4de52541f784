"""In-memory stand-ins for the generation server, for tests and local demos.

ScriptedTransport plays the stream side: frames are pushed into it from the
test and delivered to the ConnectionManager in order. FakeForgeServer plays
the REST side behind an ``httpx.MockTransport``. ``build_test_context`` wires
both into a regular ClientContext.

Usage:
    >>> harness = build_test_context()
    >>> await harness.context.controller.start_generation(request)
    >>> harness.transports.latest.push_event(EventType.CODE_CHUNK, "session-1", data="x")
    >>> await harness.settle()
"""

import asyncio
import itertools
import json
from collections import deque
from collections.abc import AsyncIterator, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import httpx

from config import Settings
from container import ClientContext, build_client_context
from events import EventType, StreamEvent
from transport import TransportError

TEST_SERVER_URL = "http://leoforge.test"

_END = object()


class ScriptedTransport:
    """Transport whose inbound frames are scripted by the test.

    Attributes:
        open_calls: Number of times ``open()`` was awaited.
        closed: Whether ``close()`` was called.
    """

    def __init__(
        self,
        url: str = f"{TEST_SERVER_URL}/ws/generation",
        *,
        transport_url: str | None = None,
        identity: str | None = None,
        hints: Mapping[str, object] | None = None,
        fail_open: str | None = None,
        open_gate: asyncio.Event | None = None,
    ) -> None:
        self._url = url
        self._transport_url = transport_url
        self._identity = identity
        self._hints = dict(hints or {})
        self.fail_open = fail_open
        self.open_gate = open_gate
        self.open_calls = 0
        self.opened = False
        self.closed = False
        self._inbox: asyncio.Queue[Any] = asyncio.Queue()

    @property
    def url(self) -> str:
        return self._url

    @property
    def transport_url(self) -> str | None:
        return self._transport_url

    async def open(self) -> None:
        self.open_calls += 1
        if self.open_gate is not None:
            await self.open_gate.wait()
        if self.fail_open:
            raise TransportError(self.fail_open)
        self.opened = True

    async def messages(self) -> AsyncIterator[str]:
        while True:
            item = await self._inbox.get()
            if item is _END:
                return
            if isinstance(item, TransportError):
                raise item
            yield item

    async def close(self) -> None:
        self.closed = True
        self._inbox.put_nowait(_END)

    def resolve_identity(self) -> str | None:
        return self._identity

    def identity_hints(self) -> Mapping[str, object]:
        return self._hints

    def push(self, frame: str | Mapping[str, Any] | StreamEvent) -> None:
        """Queue one inbound frame; dicts and events are JSON encoded."""
        if isinstance(frame, StreamEvent):
            frame = json.dumps(frame.to_wire())
        elif not isinstance(frame, str):
            frame = json.dumps(dict(frame))
        self._inbox.put_nowait(frame)

    def push_event(
        self,
        event_type: EventType,
        session_id: str,
        *,
        timestamp: str | None = None,
        **fields: Any,
    ) -> StreamEvent:
        """Build, queue and return a StreamEvent."""
        event = make_event(event_type, session_id, timestamp=timestamp, **fields)
        self.push(event)
        return event

    def drop(self, error: str = "Connection reset by peer") -> None:
        """Make the stream fail as if the network dropped."""
        self._inbox.put_nowait(TransportError(error))

    def end(self) -> None:
        """Make the stream end as if the server closed it cleanly."""
        self._inbox.put_nowait(_END)


class ScriptedTransportFactory:
    """TransportFactory producing ScriptedTransports and remembering them.

    Each transport advertises a SockJS-style ``transport_url`` whose session
    segment is ``scripted<n>``, so identities resolve through the URL source.
    """

    def __init__(self, url: str = f"{TEST_SERVER_URL}/ws/generation") -> None:
        self.url = url
        self.created: list[ScriptedTransport] = []
        self.open_gate: asyncio.Event | None = None
        self._failures: deque[str] = deque()
        self._counter = itertools.count(1)

    def fail_next(self, error: str = "Connection refused", times: int = 1) -> None:
        """Make the next ``times`` transports fail to open."""
        self._failures.extend([error] * times)

    def __call__(self) -> ScriptedTransport:
        n = next(self._counter)
        transport = ScriptedTransport(
            self.url,
            transport_url=f"{self.url}/{n:03d}/scripted{n:02d}/websocket",
            fail_open=self._failures.popleft() if self._failures else None,
            open_gate=self.open_gate,
        )
        self.created.append(transport)
        return transport

    @property
    def latest(self) -> ScriptedTransport:
        if not self.created:
            raise LookupError("No transport has been created yet")
        return self.created[-1]


@dataclass
class FakeForgeServer:
    """Minimal generation server answering the REST contract.

    Session ids are handed out as ``session-1``, ``session-2``... Set
    ``start_error`` / ``subscribe_error`` to make those calls report
    ``success: false``, or add a path to ``unavailable`` to answer HTTP 503
    without a body.
    """

    start_error: str | None = None
    subscribe_error: str | None = None
    unavailable: set[str] = field(default_factory=set)
    requests: list[httpx.Request] = field(default_factory=list)
    subscriptions: list[tuple[str, str]] = field(default_factory=list)
    _sessions: itertools.count = field(
        default_factory=lambda: itertools.count(1), init=False, repr=False
    )

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix("/api")

        if path in self.unavailable:
            return httpx.Response(503)

        if request.method == "POST" and path == "/generation/start":
            return self._start(request)
        if request.method == "POST" and path.startswith("/websocket/subscribe/"):
            return self._subscribe(request, path.rsplit("/", 1)[-1])
        if request.method == "GET" and path.startswith("/generation/status/"):
            session_id = path.rsplit("/", 1)[-1]
            return httpx.Response(
                200,
                json={"sessionId": session_id, "subscriberCount": 1, "status": "active"},
            )
        if request.method == "GET" and path == "/generation/connections":
            return httpx.Response(200, json={"activeConnections": 1})
        if request.method == "GET" and path == "/generation/health":
            return httpx.Response(
                200,
                json={"status": "UP", "timestamp": 1700000000000, "activeConnections": 1},
            )
        if request.method == "GET" and path == "/websocket/stats":
            return httpx.Response(
                200,
                json={"activeConnections": 1, "timestamp": 1700000000000},
            )
        return httpx.Response(404, json={"error": "Not found"})

    def _start(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if self.start_error:
            return httpx.Response(
                500,
                json={
                    "success": False,
                    "message": "Failed to start generation",
                    "error": self.start_error,
                },
            )
        session_id = body.get("sessionId") or f"session-{next(self._sessions)}"
        return httpx.Response(
            200,
            json={
                "success": True,
                "message": "Code generation started",
                "sessionId": session_id,
                "projectPath": f"/workspace/{body['projectName']}",
            },
        )

    def _subscribe(self, request: httpx.Request, session_id: str) -> httpx.Response:
        connection_id = request.url.params.get("webSocketSessionId", "")
        if self.subscribe_error:
            return httpx.Response(
                400,
                json={"success": False, "error": self.subscribe_error},
            )
        self.subscriptions.append((session_id, connection_id))
        return httpx.Response(
            200,
            json={
                "success": True,
                "message": "Subscribed to session",
                "sessionId": session_id,
                "webSocketSessionId": connection_id,
            },
        )


@dataclass
class StreamHarness:
    """A ClientContext wired to scripted transports and a fake server."""

    context: ClientContext
    transports: ScriptedTransportFactory
    server: FakeForgeServer

    async def settle(self, rounds: int = 5) -> None:
        """Let the reader task drain frames already queued."""
        for _ in range(rounds):
            await asyncio.sleep(0)


def make_event(
    event_type: EventType,
    session_id: str,
    *,
    timestamp: str | None = None,
    **fields: Any,
) -> StreamEvent:
    """Build a StreamEvent with a current timestamp unless one is given."""
    return StreamEvent(
        type=event_type,
        session_id=session_id,
        timestamp=timestamp or datetime.now(UTC).isoformat(),
        **fields,
    )


def fast_settings(**overrides: Any) -> Settings:
    """Settings pointing at the fake server with a fast reconnect policy."""
    values: dict[str, Any] = {
        "server_base_url": TEST_SERVER_URL,
        "reconnect_base_delay_seconds": 0.01,
        "max_reconnect_attempts": 5,
        "connect_on_startup": False,
    }
    values.update(overrides)
    return Settings(**values)


def build_test_context(
    settings: Settings | None = None,
    *,
    server: FakeForgeServer | None = None,
) -> StreamHarness:
    """Build a ClientContext backed entirely by in-memory fakes."""
    settings = settings or fast_settings()
    server = server or FakeForgeServer()
    transports = ScriptedTransportFactory(settings.stream_url)
    context = build_client_context(
        settings,
        transport_factory=transports,
        http_transport=httpx.MockTransport(server),
    )
    return StreamHarness(context=context, transports=transports, server=server)
