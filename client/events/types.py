"""Event type definitions for the LeoForge stream.

This module defines the events pushed by the generation server over the
stream connection, the connection status published by the client, and the
parsing rules applied to every inbound frame.
"""

import json
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError


class EventType(StrEnum):
    """All event types emitted by the generation server.

    Events are categorized by:
    - Generation: Reasoning and code output
    - Build: Compilation of the generated project
    - Fixing: Automatic correction loop after a failed build
    - Terminal: Completion and error states
    - Informational: Free-form notices
    """

    # Generation
    THINKING = "THINKING"
    GENERATING = "GENERATING"
    CODE_CHUNK = "CODE_CHUNK"

    # Build
    BUILD_STARTED = "BUILD_STARTED"
    BUILD_SUCCESS = "BUILD_SUCCESS"
    BUILD_FAILED = "BUILD_FAILED"

    # Fixing
    FIXING_STARTED = "FIXING_STARTED"
    FIXING_PROGRESS = "FIXING_PROGRESS"
    FIXING_SUCCESS = "FIXING_SUCCESS"
    FIXING_FAILED = "FIXING_FAILED"

    # Terminal
    PROJECT_COMPLETE = "PROJECT_COMPLETE"
    ERROR = "ERROR"

    # Informational
    INFO = "INFO"


class MalformedEventError(ValueError):
    """Raised when an inbound frame does not match the StreamEvent schema."""


EventKey = tuple[str, str, str, str | None, str | None]


class StreamEvent(BaseModel):
    """An event received from the generation server.

    Fields use snake_case in Python and camelCase on the wire. The
    ``timestamp`` is the producer's ISO-8601 string, kept verbatim so that
    duplicate detection compares exactly what the server sent.

    Payload conventions by event type:

    CODE_CHUNK:
        - data: str - Fragment of generated source text

    BUILD_FAILED:
        - data: str - Compiler output

    FIXING_PROGRESS:
        - attempt: int - Current correction attempt
        - max_attempts: int - Correction attempt budget

    ERROR:
        - message: str - Human-readable failure reason
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type: EventType
    session_id: str = Field(alias="sessionId")
    message: str | None = None
    data: str | None = None
    attempt: int | None = None
    max_attempts: int | None = Field(default=None, alias="maxAttempts")
    timestamp: str

    @property
    def key(self) -> EventKey:
        """Identity tuple used for duplicate suppression."""
        return (
            self.session_id,
            self.timestamp,
            self.type.value,
            self.message,
            self.data,
        )

    def to_wire(self) -> dict[str, Any]:
        """Serialize with camelCase keys, omitting unset optional fields."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ConnectionStatus(BaseModel):
    """State of the transport connection, independent of any generation."""

    model_config = ConfigDict(frozen=True)

    connected: bool
    error: str | None = None


def parse_stream_event(raw: str | bytes) -> StreamEvent:
    """Parse a single JSON frame into a StreamEvent.

    Args:
        raw: The JSON text of one event.

    Returns:
        The validated StreamEvent.

    Raises:
        MalformedEventError: If the frame is not JSON or does not match the schema.
    """
    try:
        payload = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MalformedEventError(f"Frame is not valid JSON: {e}") from e

    if not isinstance(payload, dict):
        raise MalformedEventError(
            f"Frame must be a JSON object, got {type(payload).__name__}"
        )

    try:
        return StreamEvent.model_validate(payload)
    except ValidationError as e:
        raise MalformedEventError(
            f"Frame does not match event schema: {e.error_count()} error(s)"
        ) from e
