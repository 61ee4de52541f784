"""Session controller: the UI-facing entry point of the stream client.

The SessionController ties a user-initiated generation request to the
connection, the subscription, and the reconciled view. Restarting while a
previous generation is still streaming is handled purely by session
filtering: the old session's events keep arriving and are logged, but no
longer match the active session.
"""

import structlog

from events.types import StreamEvent
from models.schemas import GenerationRequest, GenerationView
from remote.forge_api import ForgeApiClient, ForgeApiError
from session.reconciler import EventReconciler
from session.state import GenerationState
from session.subscriber import SessionSubscriber, SubscriptionError
from transport.base import TransportError
from transport.connection import ConnectionManager

logger = structlog.get_logger(__name__)


class GenerationStartError(Exception):
    """Raised when the generation server does not start a generation."""


class SessionController:
    """Drives one generation view through its lifecycle.

    Attributes:
        subscription_warning: Reason the last subscription failed, if it did.
    """

    def __init__(
        self,
        connection: ConnectionManager,
        subscriber: SessionSubscriber,
        api: ForgeApiClient,
        reconciler: EventReconciler,
    ) -> None:
        """Initialize the controller.

        Args:
            connection: Manager of the stream connection.
            subscriber: Registers the connection for a session.
            api: Generation server client.
            reconciler: Reconciler whose state this controller owns.
        """
        self._connection = connection
        self._subscriber = subscriber
        self._api = api
        self._reconciler = reconciler
        self.subscription_warning: str | None = None

    @property
    def state(self) -> GenerationState:
        return self._reconciler.state

    @property
    def active_session_id(self) -> str | None:
        return self.state.active_session_id

    @property
    def is_generating(self) -> bool:
        return self.state.is_generating

    @property
    def artifact(self) -> str:
        return self._reconciler.artifact

    @property
    def events(self) -> list[StreamEvent]:
        return self._reconciler.events

    async def start_generation(self, request: GenerationRequest) -> str | None:
        """Start a new generation and make its session the active one.

        Clears the previous view, makes sure the stream is connected, asks
        the generation server to start, binds the returned session id and
        registers the connection for it. A failed registration is recorded as
        a warning and does not stop the generation.

        Args:
            request: Project metadata for the generation server.

        Returns:
            The active session id, or None if a reset or a newer start
            superseded this one while it was in flight.

        Raises:
            GenerationStartError: If the server call fails or reports failure.
        """
        previous = self.state.active_session_id
        epoch = self.state.request()
        self._reconciler.clear()
        self.subscription_warning = None
        logger.info(
            "generation_requested",
            project_name=request.project_name,
            previous_session_id=previous,
            epoch=epoch,
        )

        if not self._connection.is_connected:
            try:
                await self._connection.connect()
            except TransportError as e:
                logger.warning("generation_connect_failed", error=str(e))

        try:
            response = await self._api.start_generation(request)
        except ForgeApiError as e:
            if self.state.epoch != epoch:
                logger.info("generation_start_failure_superseded", error=str(e))
                return None
            self._fail_start(str(e))
            raise GenerationStartError(str(e)) from e

        if self.state.epoch != epoch:
            logger.info("generation_start_superseded", session_id=response.session_id)
            return None

        if not response.success or not response.session_id:
            reason = response.error or response.message or "Failed to start generation"
            self._fail_start(reason)
            raise GenerationStartError(reason)

        session_id = response.session_id
        self.state.bind(session_id)
        self._reconciler.rebuild()

        try:
            await self._subscriber.subscribe_to_session(session_id)
        except SubscriptionError as e:
            logger.warning(
                "session_subscription_failed_continuing",
                session_id=session_id,
                error=str(e),
            )
            if self.state.epoch == epoch:
                self.subscription_warning = str(e)

        if self.state.epoch != epoch:
            logger.info("generation_subscription_superseded", session_id=session_id)
            return None
        return session_id

    def reset(self) -> None:
        """Return to IDLE and clear the log, artifact and watermark in one step."""
        previous = self.state.active_session_id
        self.state.reset()
        self._reconciler.clear()
        self.subscription_warning = None
        logger.info("generation_view_reset", previous_session_id=previous)

    def snapshot(self) -> GenerationView:
        """Immutable view of the current state for UI consumers."""
        events = self._reconciler.events
        return GenerationView(
            phase=self.state.phase,
            session_id=self.state.active_session_id,
            artifact=self._reconciler.artifact,
            event_count=len(events),
            events=events,
            connection=self._connection.status,
            transport_identity=self._connection.transport_identity,
            is_generating=self.state.is_generating,
            subscription_warning=self.subscription_warning,
            error=self.state.error,
        )

    def _fail_start(self, reason: str) -> None:
        logger.error("generation_start_failed", error=reason)
        self.state.fail(reason)
