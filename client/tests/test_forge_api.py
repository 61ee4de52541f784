"""Tests for remote/forge_api.py -- generation server REST client.

Requests are answered by ``httpx.MockTransport`` handlers; nothing leaves
the process.
"""

import json

import httpx
import pytest

from models.schemas import GenerationRequest
from remote import ForgeApiClient, ForgeApiError
from testing import FakeForgeServer

BASE_URL = "http://leoforge.test/api"


def _client(handler) -> ForgeApiClient:
    return ForgeApiClient(BASE_URL, transport=httpx.MockTransport(handler))


# =========================================================================
# Generation start
# =========================================================================


class TestStartGeneration:
    async def test_posts_camel_case_body(self, generation_request: GenerationRequest) -> None:
        captured: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            return httpx.Response(200, json={"success": True, "sessionId": "abc"})

        api = _client(handler)
        response = await api.start_generation(generation_request)
        await api.aclose()

        assert response.success
        assert response.session_id == "abc"
        assert captured[0].method == "POST"
        assert captured[0].url.path == "/api/generation/start"
        assert json.loads(captured[0].content) == {
            "projectName": "todo_app",
            "projectDescription": "A todo list program with add, complete and delete",
        }

    async def test_failure_body_on_error_status_is_parsed(
        self, generation_request: GenerationRequest
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                500,
                json={"success": False, "message": "Failed", "error": "disk full"},
            )

        api = _client(handler)
        response = await api.start_generation(generation_request)
        await api.aclose()

        assert not response.success
        assert response.error == "disk full"

    async def test_error_status_without_body_raises(
        self, generation_request: GenerationRequest
    ) -> None:
        api = _client(lambda request: httpx.Response(502, text="Bad Gateway"))
        with pytest.raises(ForgeApiError) as exc_info:
            await api.start_generation(generation_request)
        await api.aclose()
        assert exc_info.value.status_code == 502

    async def test_network_error_raises(self, generation_request: GenerationRequest) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("Connection refused", request=request)

        api = _client(handler)
        with pytest.raises(ForgeApiError, match="Connection refused"):
            await api.start_generation(generation_request)
        await api.aclose()


# =========================================================================
# Subscription
# =========================================================================


class TestSubscribe:
    async def test_passes_connection_id_as_query_param(self) -> None:
        server = FakeForgeServer()
        api = _client(server)
        response = await api.subscribe_to_session("session-1", "abc123xy")
        await api.aclose()

        assert response.success
        assert response.web_socket_session_id == "abc123xy"
        assert server.subscriptions == [("session-1", "abc123xy")]
        request = server.requests[0]
        assert request.url.path == "/api/websocket/subscribe/session-1"
        assert request.url.params["webSocketSessionId"] == "abc123xy"

    async def test_rejection_returned_as_model(self) -> None:
        api = _client(FakeForgeServer(subscribe_error="Unknown connection"))
        response = await api.subscribe_to_session("session-1", "abc123xy")
        await api.aclose()

        assert not response.success
        assert response.error == "Unknown connection"


# =========================================================================
# Diagnostics endpoints
# =========================================================================


class TestDiagnosticsEndpoints:
    async def test_health_and_stats(self) -> None:
        api = _client(FakeForgeServer())
        health = await api.health_check()
        connections = await api.get_connections()
        stats = await api.get_websocket_stats()
        status = await api.get_status("session-7")
        await api.aclose()

        assert health.status == "UP"
        assert health.active_connections == 1
        assert connections.active_connections == 1
        assert stats.timestamp == 1700000000000
        assert status.session_id == "session-7"
        assert status.subscriber_count == 1

    async def test_error_status_raises_for_models_without_success(self) -> None:
        api = _client(FakeForgeServer(unavailable={"/generation/health"}))
        with pytest.raises(ForgeApiError) as exc_info:
            await api.health_check()
        await api.aclose()
        assert exc_info.value.status_code == 503

    async def test_undecodable_body_raises(self) -> None:
        api = _client(lambda request: httpx.Response(200, text="<html>oops</html>"))
        with pytest.raises(ForgeApiError, match="invalid body"):
            await api.get_connections()
        await api.aclose()

    async def test_base_url_trailing_slash_is_normalized(self) -> None:
        server = FakeForgeServer()
        api = ForgeApiClient(f"{BASE_URL}/", transport=httpx.MockTransport(server))
        await api.get_connections()
        await api.aclose()
        assert server.requests[0].url.path == "/api/generation/connections"
