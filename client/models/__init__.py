"""Data models for the LeoForge stream client."""

from models.schemas import (
    ConnectionsResponse,
    DiagnosticsResponse,
    GenerationPhase,
    GenerationRequest,
    GenerationResponse,
    GenerationView,
    HealthResponse,
    StartGenerationResult,
    StatusResponse,
    SubscriptionResponse,
    WebSocketStatsResponse,
)

__all__ = [
    "GenerationPhase",
    "GenerationRequest",
    "GenerationResponse",
    "SubscriptionResponse",
    "StatusResponse",
    "ConnectionsResponse",
    "HealthResponse",
    "WebSocketStatsResponse",
    "GenerationView",
    "StartGenerationResult",
    "DiagnosticsResponse",
]
