"""Registration of the stream connection for a logical generation session.

The generation server only pushes a session's events to connections that
registered for it. Registration needs the transport identity of the open
connection, so it can only happen once the ConnectionManager is connected.
"""

import structlog

from models.schemas import SubscriptionResponse
from remote.forge_api import ForgeApiClient, ForgeApiError
from transport.connection import ConnectionManager

logger = structlog.get_logger(__name__)


class SubscriptionError(Exception):
    """Raised when a connection cannot be registered for a session."""


class SessionSubscriber:
    """Binds the current transport identity to a logical session id."""

    def __init__(self, connection: ConnectionManager, api: ForgeApiClient) -> None:
        self._connection = connection
        self._api = api

    async def subscribe_to_session(self, session_id: str) -> SubscriptionResponse:
        """Register the open connection for ``session_id``.

        Args:
            session_id: The logical session returned by generation-start.

        Returns:
            The server's acknowledgement.

        Raises:
            SubscriptionError: If no transport identity is available, the
                call fails, or the server rejects the registration.
        """
        identity = self._connection.transport_identity
        if not identity:
            logger.error("subscription_not_connected", session_id=session_id)
            raise SubscriptionError("Not connected: transport identity unavailable")

        try:
            response = await self._api.subscribe_to_session(session_id, identity)
        except ForgeApiError as e:
            logger.error(
                "subscription_request_failed",
                session_id=session_id,
                transport_identity=identity,
                error=str(e),
            )
            raise SubscriptionError(str(e)) from e

        if not response.success:
            reason = response.error or response.message or "Subscription rejected"
            logger.error(
                "subscription_rejected",
                session_id=session_id,
                transport_identity=identity,
                error=reason,
            )
            raise SubscriptionError(reason)

        logger.info(
            "subscribed_to_session",
            session_id=session_id,
            transport_identity=identity,
        )
        return response
