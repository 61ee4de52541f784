"""HTTP client for the generation server's REST API.

Wraps the endpoints the stream client calls: starting a generation,
registering a stream connection for a session, and the status/diagnostic
endpoints. Transport failures and undecodable responses are raised as
ForgeApiError so callers only handle one exception type.
"""

from typing import Any, TypeVar

import httpx
import structlog
from pydantic import BaseModel, ValidationError

from models.schemas import (
    ConnectionsResponse,
    GenerationRequest,
    GenerationResponse,
    HealthResponse,
    StatusResponse,
    SubscriptionResponse,
    WebSocketStatsResponse,
)

logger = structlog.get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class ForgeApiError(Exception):
    """Raised when a generation server call fails or returns an unusable body.

    Attributes:
        status_code: HTTP status of the response, if one was received.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ForgeApiClient:
    """Async client for the generation server.

    Endpoints that report failure in their body (``success: false``) are
    returned as parsed models even on 4xx/5xx statuses, matching how the
    server answers; other endpoints raise ForgeApiError on error statuses.

    Usage:
        >>> api = ForgeApiClient("http://localhost:8080/api")
        >>> response = await api.start_generation(request)
        >>> await api.aclose()
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Create the client.

        Args:
            base_url: Base URL of the REST API (e.g. http://localhost:8080/api).
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (used by tests).
        """
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        response_model: type[ModelT],
        **kwargs: Any,
    ) -> ModelT:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.warning("forge_api_request_failed", method=method, path=path, error=str(e))
            raise ForgeApiError(f"{method} {path} failed: {e}") from e

        reports_in_body = "success" in response_model.model_fields
        if response.is_error and not reports_in_body:
            logger.warning(
                "forge_api_error_status",
                method=method,
                path=path,
                status_code=response.status_code,
            )
            raise ForgeApiError(
                f"{method} {path} returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            return response_model.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.warning(
                "forge_api_invalid_response",
                method=method,
                path=path,
                status_code=response.status_code,
                error=str(e),
            )
            raise ForgeApiError(
                f"{method} {path} returned an invalid body (HTTP {response.status_code})",
                status_code=response.status_code,
            ) from e

    async def start_generation(self, request: GenerationRequest) -> GenerationResponse:
        """POST /generation/start."""
        return await self._request(
            "POST",
            "/generation/start",
            GenerationResponse,
            json=request.model_dump(by_alias=True, exclude_none=True),
        )

    async def subscribe_to_session(
        self,
        session_id: str,
        web_socket_session_id: str,
    ) -> SubscriptionResponse:
        """POST /websocket/subscribe/{session_id}?webSocketSessionId=..."""
        return await self._request(
            "POST",
            f"/websocket/subscribe/{session_id}",
            SubscriptionResponse,
            params={"webSocketSessionId": web_socket_session_id},
        )

    async def get_status(self, session_id: str) -> StatusResponse:
        return await self._request("GET", f"/generation/status/{session_id}", StatusResponse)

    async def get_connections(self) -> ConnectionsResponse:
        return await self._request("GET", "/generation/connections", ConnectionsResponse)

    async def health_check(self) -> HealthResponse:
        return await self._request("GET", "/generation/health", HealthResponse)

    async def get_websocket_stats(self) -> WebSocketStatsResponse:
        return await self._request("GET", "/websocket/stats", WebSocketStatsResponse)
