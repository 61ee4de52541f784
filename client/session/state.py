"""Generation state machine shared by the controller and the reconciler.

    IDLE -> REQUESTED -> STREAMING -> COMPLETE | FAILED

REQUESTED is entered when the user submits, STREAMING on the first applied
event of the active session. COMPLETE and FAILED are terminal for the
session. ``reset()`` returns any state to IDLE.
"""

from dataclasses import dataclass

import structlog

from models.schemas import GenerationPhase

logger = structlog.get_logger(__name__)

TERMINAL_PHASES = frozenset({GenerationPhase.COMPLETE, GenerationPhase.FAILED})


@dataclass
class GenerationState:
    """Phase and active session of the current generation view.

    Attributes:
        phase: Current phase.
        active_session_id: Logical session whose events drive the view.
        error: Failure reason when phase is FAILED.
        epoch: Incremented on every reset; lets in-flight work detect that
            the view it belonged to is gone.
    """

    phase: GenerationPhase = GenerationPhase.IDLE
    active_session_id: str | None = None
    error: str | None = None
    epoch: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES

    @property
    def is_generating(self) -> bool:
        return self.phase in (GenerationPhase.REQUESTED, GenerationPhase.STREAMING)

    def reset(self) -> int:
        """Return to IDLE and start a new epoch."""
        self.phase = GenerationPhase.IDLE
        self.active_session_id = None
        self.error = None
        self.epoch += 1
        return self.epoch

    def request(self) -> int:
        """Reset and enter REQUESTED; returns the new epoch."""
        epoch = self.reset()
        self._transition(GenerationPhase.REQUESTED)
        return epoch

    def bind(self, session_id: str) -> None:
        """Make ``session_id`` the active logical session."""
        self.active_session_id = session_id
        logger.info("generation_session_bound", session_id=session_id)

    def mark_streaming(self) -> None:
        if self.phase == GenerationPhase.REQUESTED:
            self._transition(GenerationPhase.STREAMING)

    def complete(self) -> None:
        if not self.is_terminal:
            self._transition(GenerationPhase.COMPLETE)

    def fail(self, error: str) -> None:
        if not self.is_terminal:
            self.error = error
            self._transition(GenerationPhase.FAILED)

    def _transition(self, phase: GenerationPhase) -> None:
        logger.info(
            "generation_phase_changed",
            from_phase=self.phase.value,
            to_phase=phase.value,
            session_id=self.active_session_id,
        )
        self.phase = phase
