"""Event reconciliation: raw stream in, consistent derived state out.

The reconciler keeps three pieces of derived state in step with the
dispatched event stream:

- the event log: every distinct event received, in receipt order
- the artifact: concatenated CODE_CHUNK payloads of the active session
- the generation phase: advanced through the shared GenerationState

Duplicate suppression (exact match on session, timestamp, type, message and
data) guards against redelivery by the transport. The watermark guards
against re-applying events already folded into the artifact. They are
independent: neither replaces the other.

Lost chunks are not detected; the server provides no sequence numbers.
"""

import structlog

from events.types import EventKey, EventType, StreamEvent
from session.state import GenerationState

logger = structlog.get_logger(__name__)


class EventReconciler:
    """Folds dispatched StreamEvents into the log, artifact and phase.

    All methods are synchronous; a call completes every mutation (including
    the watermark advance) before returning, so an event is never observed
    half-applied.

    Attributes:
        state: The generation state shared with the SessionController.
    """

    def __init__(self, state: GenerationState) -> None:
        """Initialize empty derived state.

        Args:
            state: Generation state consulted for the active session and
                advanced on phase-changing events.
        """
        self.state = state
        self._log: list[StreamEvent] = []
        self._seen: set[EventKey] = set()
        self._chunks: list[str] = []
        self._watermark = 0

    @property
    def events(self) -> list[StreamEvent]:
        """A copy of the event log."""
        return list(self._log)

    @property
    def artifact(self) -> str:
        return "".join(self._chunks)

    @property
    def chunk_count(self) -> int:
        return len(self._chunks)

    @property
    def watermark(self) -> int:
        """Number of log entries already applied to derived state."""
        return self._watermark

    def events_for(self, session_id: str) -> list[StreamEvent]:
        return [event for event in self._log if event.session_id == session_id]

    def receive(self, event: StreamEvent) -> bool:
        """Record an inbound event and apply it if it belongs to the active session.

        Args:
            event: The dispatched event.

        Returns:
            True if the event was new and recorded, False if it was a duplicate.
        """
        key = event.key
        if key in self._seen:
            logger.warning(
                "duplicate_event_ignored",
                session_id=event.session_id,
                event_type=event.type.value,
                timestamp=event.timestamp,
            )
            return False

        self._seen.add(key)
        self._log.append(event)
        self.reconcile()
        return True

    def reconcile(self) -> int:
        """Apply every logged event beyond the watermark.

        Returns:
            Number of log entries processed in this pass.
        """
        pending = self._log[self._watermark:]
        for event in pending:
            self._apply(event)
        self._watermark = len(self._log)
        return len(pending)

    def rebuild(self) -> None:
        """Recompute the artifact and phase from the whole log.

        Used when the active session is bound after some of its events were
        already logged.
        """
        self._chunks.clear()
        self._watermark = 0
        applied = self.reconcile()
        logger.debug(
            "reconciler_rebuilt",
            session_id=self.state.active_session_id,
            events_replayed=applied,
            artifact_length=sum(len(chunk) for chunk in self._chunks),
        )

    def clear(self) -> None:
        """Drop the log, artifact and watermark."""
        cleared = len(self._log)
        self._log.clear()
        self._seen.clear()
        self._chunks.clear()
        self._watermark = 0
        logger.debug("reconciler_cleared", events_cleared=cleared)

    def _apply(self, event: StreamEvent) -> None:
        active = self.state.active_session_id
        if active is None or event.session_id != active:
            logger.debug(
                "event_outside_active_session",
                session_id=event.session_id,
                active_session_id=active,
                event_type=event.type.value,
            )
            return

        if self.state.is_terminal:
            logger.debug(
                "late_event_after_terminal_phase",
                session_id=event.session_id,
                event_type=event.type.value,
                phase=self.state.phase.value,
            )
        else:
            self.state.mark_streaming()

        if event.type == EventType.CODE_CHUNK:
            if event.data:
                self._chunks.append(event.data)
                logger.debug(
                    "code_chunk_applied",
                    session_id=event.session_id,
                    chunk_number=len(self._chunks),
                    chunk_size=len(event.data),
                )
        elif event.type == EventType.PROJECT_COMPLETE:
            self.state.complete()
        elif event.type == EventType.ERROR:
            self.state.fail(event.message or "Generation failed")
