"""Generation session handling.

Key Components:
    - GenerationState: Phase machine shared by controller and reconciler
    - EventReconciler: Dedup, session filtering, artifact accumulation
    - SessionSubscriber: Registers the connection for a logical session
    - SessionController: UI-facing entry point for starting and resetting
"""

from session.controller import GenerationStartError, SessionController
from session.reconciler import EventReconciler
from session.state import TERMINAL_PHASES, GenerationState
from session.subscriber import SessionSubscriber, SubscriptionError

__all__ = [
    "GenerationState",
    "TERMINAL_PHASES",
    "EventReconciler",
    "SessionSubscriber",
    "SubscriptionError",
    "SessionController",
    "GenerationStartError",
]
