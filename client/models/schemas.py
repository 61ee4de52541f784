"""Pydantic schemas for the generation server contracts and the UI surface.

Remote models mirror the generation server's JSON (camelCase on the wire,
snake_case in Python). GenerationView is the snapshot the local UI surface
serves to its consumers.
"""

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from events.types import ConnectionStatus, StreamEvent


class CamelModel(BaseModel):
    """Base model serializing field names as camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GenerationPhase(StrEnum):
    """Lifecycle of one generation as seen by the client."""

    IDLE = "idle"
    REQUESTED = "requested"
    STREAMING = "streaming"
    COMPLETE = "complete"
    FAILED = "failed"


# -----------------------------------------------------------------------------
# Generation server contracts
# -----------------------------------------------------------------------------


class GenerationRequest(CamelModel):
    """Request body for starting a generation."""

    project_name: str = Field(
        min_length=1,
        pattern=r"^[a-z][a-z0-9_]*$",
        description="Project name: lowercase letters, digits and underscores",
        examples=["todo_app"],
    )
    project_description: str = Field(
        min_length=1,
        description="What the generated project should do",
        examples=["A todo list program with add, complete and delete"],
    )
    workspace_path: str | None = Field(
        default=None,
        description="Workspace directory on the server; server default if omitted",
    )
    session_id: str | None = Field(
        default=None,
        description="Client-chosen session id; the server generates one if omitted",
    )

    @field_validator("project_description")
    @classmethod
    def description_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Project description is required")
        return v


class GenerationResponse(CamelModel):
    """Response from the generation-start endpoint."""

    success: bool
    message: str | None = None
    session_id: str | None = None
    project_path: str | None = None
    error: str | None = None


class SubscriptionResponse(CamelModel):
    """Acknowledgement of a (session, connection) registration."""

    success: bool
    message: str | None = None
    session_id: str | None = None
    web_socket_session_id: str | None = None
    error: str | None = None


class StatusResponse(CamelModel):
    """Per-session status from the generation server."""

    session_id: str
    subscriber_count: int = 0
    status: str | None = None


class ConnectionsResponse(CamelModel):
    """Active stream connections on the generation server."""

    active_connections: int = 0


class HealthResponse(CamelModel):
    """Generation server health."""

    status: str
    timestamp: int | None = None
    active_connections: int = 0


class WebSocketStatsResponse(CamelModel):
    """Stream statistics from the generation server."""

    active_connections: int = 0
    timestamp: int | None = None


# -----------------------------------------------------------------------------
# Local UI surface
# -----------------------------------------------------------------------------


class GenerationView(CamelModel):
    """Snapshot of client state for UI consumers."""

    phase: GenerationPhase
    session_id: str | None = None
    artifact: str = ""
    event_count: int = 0
    events: list[StreamEvent] = Field(default_factory=list)
    connection: ConnectionStatus
    transport_identity: str | None = None
    is_generating: bool = False
    subscription_warning: str | None = None
    error: str | None = None


class StartGenerationResult(CamelModel):
    """Result of a generation started through the UI surface."""

    session_id: str
    subscription_warning: str | None = None


class DiagnosticsResponse(CamelModel):
    """Remote diagnostics collected for the UI; failed calls land in ``errors``."""

    health: HealthResponse | None = None
    connections: ConnectionsResponse | None = None
    websocket_stats: WebSocketStatsResponse | None = None
    errors: dict[str, str] = Field(default_factory=dict)
    handler_counts: dict[str, int] = Field(default_factory=dict)
    connecting: bool = False
    reconnect_attempts: int = 0
    connections_opened: int = 0
