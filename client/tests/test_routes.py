"""Tests for api/routes.py and api/websocket.py -- the local UI surface.

Uses FastAPI TestClient with a ClientContext wired to scripted transports
and a fake generation server. Frames are pushed onto the scripted transport
through the TestClient's portal so they land on the app's event loop.
"""

from collections.abc import Generator
from functools import partial

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

import main
from api import router, websocket_router
from api.routes import set_client_context
from events import EventType
from testing import StreamHarness, build_test_context

_GENERATION_BODY = {
    "projectName": "todo_app",
    "projectDescription": "A todo list program with add, complete and delete",
}

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def stream_harness() -> StreamHarness:
    return build_test_context()


@pytest.fixture()
def client(stream_harness: StreamHarness) -> Generator[TestClient, None, None]:
    """Create a FastAPI TestClient around the harness context."""
    app = FastAPI()
    app.include_router(router)
    app.include_router(websocket_router)
    set_client_context(stream_harness.context)
    with TestClient(app) as c:
        yield c
        c.portal.call(stream_harness.context.aclose)
    set_client_context(None)


def _push_event(client: TestClient, harness: StreamHarness, event_type: EventType, **fields) -> None:
    transport = harness.transports.latest
    client.portal.call(partial(transport.push_event, event_type, **fields))
    client.portal.call(partial(harness.settle, rounds=20))


# =========================================================================
# Health Check
# =========================================================================


class TestHealthCheck:
    """GET /health."""

    def test_health_returns_200(self, client: TestClient) -> None:
        resp = client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "healthy"
        assert data["connected"] is False
        assert "timestamp" in data

    def test_uninitialized_context_returns_503(self) -> None:
        app = FastAPI()
        app.include_router(router)
        set_client_context(None)
        with TestClient(app) as c:
            assert c.get("/health").status_code == 503


# =========================================================================
# Generation
# =========================================================================


class TestGeneration:
    """POST /api/generation, GET /api/state, POST /api/generation/reset."""

    def test_initial_state(self, client: TestClient) -> None:
        data = client.get("/api/state").json()
        assert data["phase"] == "idle"
        assert data["sessionId"] is None
        assert data["artifact"] == ""
        assert data["eventCount"] == 0
        assert data["connection"] == {"connected": False, "error": None}

    def test_start_generation_returns_201(
        self, client: TestClient, stream_harness: StreamHarness
    ) -> None:
        resp = client.post("/api/generation", json=_GENERATION_BODY)

        assert resp.status_code == 201
        assert resp.json() == {"sessionId": "session-1", "subscriptionWarning": None}
        assert stream_harness.server.subscriptions == [("session-1", "scripted01")]

    def test_streamed_chunks_show_in_state(
        self, client: TestClient, stream_harness: StreamHarness
    ) -> None:
        client.post("/api/generation", json=_GENERATION_BODY)
        _push_event(
            client, stream_harness, EventType.CODE_CHUNK,
            session_id="session-1", data="fn main() {}", timestamp="t1",
        )
        _push_event(
            client, stream_harness, EventType.PROJECT_COMPLETE,
            session_id="session-1", timestamp="t2",
        )

        data = client.get("/api/state").json()
        assert data["phase"] == "complete"
        assert data["artifact"] == "fn main() {}"
        assert data["eventCount"] == 2
        assert data["transportIdentity"] == "scripted01"
        assert data["events"][0]["sessionId"] == "session-1"

    def test_invalid_project_name_returns_422(self, client: TestClient) -> None:
        body = {**_GENERATION_BODY, "projectName": "Todo App"}
        assert client.post("/api/generation", json=body).status_code == 422

    def test_blank_description_returns_422(self, client: TestClient) -> None:
        body = {**_GENERATION_BODY, "projectDescription": "   "}
        assert client.post("/api/generation", json=body).status_code == 422

    def test_server_failure_returns_502(
        self, client: TestClient, stream_harness: StreamHarness
    ) -> None:
        stream_harness.server.start_error = "Out of disk"

        resp = client.post("/api/generation", json=_GENERATION_BODY)

        assert resp.status_code == 502
        assert "Out of disk" in resp.json()["detail"]
        assert client.get("/api/state").json()["phase"] == "failed"

    def test_reset_returns_idle_view(
        self, client: TestClient, stream_harness: StreamHarness
    ) -> None:
        client.post("/api/generation", json=_GENERATION_BODY)
        _push_event(
            client, stream_harness, EventType.CODE_CHUNK,
            session_id="session-1", data="x", timestamp="t1",
        )

        data = client.post("/api/generation/reset").json()

        assert data["phase"] == "idle"
        assert data["artifact"] == ""
        assert data["events"] == []

    def test_events_can_be_filtered_by_session(
        self, client: TestClient, stream_harness: StreamHarness
    ) -> None:
        client.post("/api/generation", json=_GENERATION_BODY)
        _push_event(
            client, stream_harness, EventType.INFO,
            session_id="session-1", message="ours", timestamp="t1",
        )
        _push_event(
            client, stream_harness, EventType.INFO,
            session_id="other", message="theirs", timestamp="t2",
        )

        assert len(client.get("/api/events").json()) == 2
        filtered = client.get("/api/events", params={"sessionId": "other"}).json()
        assert [event["message"] for event in filtered] == ["theirs"]

    def test_remote_status_proxy(self, client: TestClient) -> None:
        resp = client.get("/api/generation/session-9/status")
        assert resp.status_code == 200
        assert resp.json()["sessionId"] == "session-9"

    def test_remote_status_failure_returns_502(
        self, client: TestClient, stream_harness: StreamHarness
    ) -> None:
        stream_harness.server.unavailable.add("/generation/status/session-9")
        assert client.get("/api/generation/session-9/status").status_code == 502


# =========================================================================
# Connection control
# =========================================================================


class TestConnectionControl:
    """POST /api/connection/connect and /api/connection/disconnect."""

    def test_connect_and_disconnect(self, client: TestClient) -> None:
        resp = client.post("/api/connection/connect")
        assert resp.status_code == 200
        assert resp.json() == {"connected": True, "error": None}

        resp = client.post("/api/connection/disconnect")
        assert resp.json() == {"connected": False, "error": None}

    def test_connect_failure_returns_503(
        self, client: TestClient, stream_harness: StreamHarness
    ) -> None:
        stream_harness.transports.fail_next("Connection refused", times=5)

        resp = client.post("/api/connection/connect")

        assert resp.status_code == 503
        assert "Connection refused" in resp.json()["detail"]


# =========================================================================
# Diagnostics
# =========================================================================


class TestDiagnostics:
    """GET /api/diagnostics."""

    def test_collects_remote_diagnostics(self, client: TestClient) -> None:
        data = client.get("/api/diagnostics").json()
        assert data["health"]["status"] == "UP"
        assert data["connections"]["activeConnections"] == 1
        assert data["websocketStats"]["activeConnections"] == 1
        assert data["errors"] == {}
        assert data["handlerCounts"]["event"] == 1
        assert data["connecting"] is False

    def test_reports_failed_calls(
        self, client: TestClient, stream_harness: StreamHarness
    ) -> None:
        stream_harness.server.unavailable.add("/generation/health")

        data = client.get("/api/diagnostics").json()

        assert data["health"] is None
        assert "health" in data["errors"]
        assert data["connections"] is not None


# =========================================================================
# WebSocket relay
# =========================================================================


class TestStreamRelay:
    """WS /ws/stream."""

    def test_relays_status_and_events(
        self, client: TestClient, stream_harness: StreamHarness
    ) -> None:
        client.post("/api/connection/connect")

        with client.websocket_connect("/ws/stream") as ws:
            assert ws.receive_json() == {
                "kind": "status",
                "status": {"connected": True, "error": None},
            }

            _push_event(
                client, stream_harness, EventType.THINKING,
                session_id="session-1", message="Planning", timestamp="t1",
            )

            assert ws.receive_json() == {
                "kind": "event",
                "event": {
                    "type": "THINKING",
                    "sessionId": "session-1",
                    "message": "Planning",
                    "timestamp": "t1",
                },
            }

    def test_ping_and_reset_commands(self, client: TestClient) -> None:
        with client.websocket_connect("/ws/stream") as ws:
            ws.receive_json()

            ws.send_json({"type": "ping", "timestamp": 42})
            assert ws.receive_json() == {"kind": "pong", "timestamp": 42}

            ws.send_json({"type": "reset"})
            message = ws.receive_json()
            assert message["kind"] == "state"
            assert message["state"]["phase"] == "idle"

    def test_relay_detaches_handlers_on_close(
        self, client: TestClient, stream_harness: StreamHarness
    ) -> None:
        dispatcher = stream_harness.context.dispatcher
        before = dispatcher.handler_counts()

        with client.websocket_connect("/ws/stream") as ws:
            ws.receive_json()
            ws.send_json({"type": "ping"})
            ws.receive_json()
            assert dispatcher.handler_counts()["status"] == before["status"] + 1

        client.get("/health")
        assert dispatcher.handler_counts() == before


# =========================================================================
# Application lifespan
# =========================================================================


class TestLifespan:
    def test_lifespan_builds_context_and_connects(
        self, stream_harness: StreamHarness, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(main, "build_client_context", lambda settings: stream_harness.context)
        monkeypatch.setattr(main.settings, "connect_on_startup", True)

        with TestClient(main.app) as c:
            assert c.get("/health").json()["connected"] is True
            assert c.get("/").json()["docs"] == "/docs"

        assert stream_harness.transports.latest.closed
