"""Shared test fixtures for stream client tests.

Provides a fresh dispatcher, generation state and reconciler per test, and a
fully wired ClientContext backed by scripted transports and a fake generation
server so tests never open real sockets.
"""

import sys
from collections.abc import AsyncGenerator

import pytest

# Ensure the client package root is on sys.path so that absolute imports
# like ``from transport.connection import ...`` resolve correctly when
# running pytest from the repository root.
_client_root = str(__import__("pathlib").Path(__file__).resolve().parent.parent)
if _client_root not in sys.path:
    sys.path.insert(0, _client_root)

from events import EventDispatcher, EventType, StreamEvent  # noqa: E402
from models.schemas import GenerationRequest  # noqa: E402
from session import EventReconciler, GenerationState  # noqa: E402
from testing import StreamHarness, build_test_context  # noqa: E402

# ---------------------------------------------------------------------------
# Event helpers
# ---------------------------------------------------------------------------


def _make_event(
    event_type: EventType = EventType.CODE_CHUNK,
    session_id: str = "session-1",
    timestamp: str = "2025-01-01T00:00:00",
    **fields: object,
) -> StreamEvent:
    """Build a StreamEvent with a fixed, explicit timestamp."""
    return StreamEvent(
        type=event_type,
        session_id=session_id,
        timestamp=timestamp,
        **fields,
    )


@pytest.fixture()
def make_event():
    """Factory fixture for StreamEvents with explicit timestamps."""
    return _make_event


@pytest.fixture()
def generation_request() -> GenerationRequest:
    return GenerationRequest(
        project_name="todo_app",
        project_description="A todo list program with add, complete and delete",
    )


# ---------------------------------------------------------------------------
# Components
# ---------------------------------------------------------------------------


@pytest.fixture()
def dispatcher() -> EventDispatcher:
    """Return a fresh EventDispatcher for each test."""
    return EventDispatcher()


@pytest.fixture()
def state() -> GenerationState:
    return GenerationState()


@pytest.fixture()
def reconciler(state: GenerationState) -> EventReconciler:
    return EventReconciler(state)


@pytest.fixture()
async def harness() -> AsyncGenerator[StreamHarness, None]:
    """A ClientContext wired to scripted transports and a fake server."""
    harness = build_test_context()
    yield harness
    await harness.context.aclose()
