"""HTTP API routes for the LeoForge stream client.

This module defines the local endpoints a UI uses to start and reset
generations, control the stream connection, and read the reconciled view.
Live events are relayed over WebSocket in websocket.py.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Annotated

import structlog
from fastapi import APIRouter, HTTPException, Path, Query, status

from events import ConnectionStatus, StreamEvent
from models.schemas import (
    DiagnosticsResponse,
    GenerationRequest,
    GenerationView,
    StartGenerationResult,
    StatusResponse,
)
from remote import ForgeApiError
from session import GenerationStartError
from transport import TransportError

if TYPE_CHECKING:
    from container import ClientContext

logger = structlog.get_logger(__name__)

router = APIRouter()

# Client context dependency (set during application startup)
_client_context: ClientContext | None = None


def set_client_context(context: ClientContext | None) -> None:
    """Set the client context used by the HTTP and WebSocket handlers.

    Args:
        context: The ClientContext built at startup, or None on shutdown.
    """
    global _client_context
    _client_context = context
    logger.info("client_context_configured", configured=context is not None)


def get_client_context() -> ClientContext:
    """Get the client context.

    Returns:
        The configured ClientContext.

    Raises:
        HTTPException: If the context has not been configured.
    """
    if _client_context is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Stream client not initialized",
        )
    return _client_context


# -----------------------------------------------------------------------------
# Health
# -----------------------------------------------------------------------------


@router.get("/health")
async def health_check() -> dict[str, object]:
    """Liveness of the client process and its stream connection."""
    context = get_client_context()
    return {
        "status": "healthy",
        "connected": context.connection.is_connected,
        "timestamp": time.time(),
    }


# -----------------------------------------------------------------------------
# Generation view
# -----------------------------------------------------------------------------


@router.get("/api/state", response_model=GenerationView)
async def get_state() -> GenerationView:
    return get_client_context().controller.snapshot()


@router.get("/api/events", response_model=list[StreamEvent])
async def get_events(
    session_id: Annotated[
        str | None,
        Query(alias="sessionId", description="Only events of this session"),
    ] = None,
) -> list[StreamEvent]:
    """Return the raw event log in receipt order."""
    reconciler = get_client_context().reconciler
    if session_id is None:
        return reconciler.events
    return reconciler.events_for(session_id)


@router.post(
    "/api/generation",
    response_model=StartGenerationResult,
    status_code=status.HTTP_201_CREATED,
)
async def start_generation(request: GenerationRequest) -> StartGenerationResult:
    """Start a generation and make its session the active one.

    Raises:
        HTTPException: 502 if the generation server did not start it, 409 if
            a reset or newer start superseded it while in flight.
    """
    controller = get_client_context().controller
    try:
        session_id = await controller.start_generation(request)
    except GenerationStartError as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Generation server did not start the generation: {e}",
        ) from e

    if session_id is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Generation was superseded before it started",
        )

    return StartGenerationResult(
        session_id=session_id,
        subscription_warning=controller.subscription_warning,
    )


@router.post("/api/generation/reset", response_model=GenerationView)
async def reset_generation() -> GenerationView:
    controller = get_client_context().controller
    controller.reset()
    return controller.snapshot()


@router.get("/api/generation/{session_id}/status", response_model=StatusResponse)
async def get_generation_status(
    session_id: Annotated[str, Path(description="Logical session id")],
) -> StatusResponse:
    """Proxy the generation server's per-session status."""
    try:
        return await get_client_context().api.get_status(session_id)
    except ForgeApiError as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=str(e),
        ) from e


# -----------------------------------------------------------------------------
# Connection control
# -----------------------------------------------------------------------------


@router.post("/api/connection/connect", response_model=ConnectionStatus)
async def connect() -> ConnectionStatus:
    connection = get_client_context().connection
    try:
        await connection.connect()
    except TransportError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e),
        ) from e
    return connection.status


@router.post("/api/connection/disconnect", response_model=ConnectionStatus)
async def disconnect() -> ConnectionStatus:
    connection = get_client_context().connection
    await connection.disconnect()
    return connection.status


# -----------------------------------------------------------------------------
# Diagnostics
# -----------------------------------------------------------------------------


@router.get("/api/diagnostics", response_model=DiagnosticsResponse)
async def get_diagnostics() -> DiagnosticsResponse:
    """Collect remote diagnostics; a failing call is reported, not raised."""
    context = get_client_context()
    api = context.api
    diagnostics = DiagnosticsResponse(
        handler_counts=context.dispatcher.handler_counts(),
        connecting=context.connection.is_connecting,
        reconnect_attempts=context.connection.reconnect_attempts,
        connections_opened=context.connection.connections_opened,
    )

    try:
        diagnostics.health = await api.health_check()
    except ForgeApiError as e:
        diagnostics.errors["health"] = str(e)
    try:
        diagnostics.connections = await api.get_connections()
    except ForgeApiError as e:
        diagnostics.errors["connections"] = str(e)
    try:
        diagnostics.websocket_stats = await api.get_websocket_stats()
    except ForgeApiError as e:
        diagnostics.errors["websocketStats"] = str(e)

    if diagnostics.errors:
        logger.warning("diagnostics_incomplete", failed=sorted(diagnostics.errors))
    return diagnostics
