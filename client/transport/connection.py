"""Connection manager for the generation event stream.

This module provides the ConnectionManager class that owns the single
transport connection to the generation server, its open/close lifecycle, and
the reconnect-with-backoff policy.

Guarantees:
- At most one transport exists at a time; concurrent ``connect()`` calls
  join the attempt already in flight, and a transport whose stream ended is
  closed before any reconnect is scheduled
- At most one reconnect timer is pending at a time
- ``disconnect()`` is the only close path that never schedules a reconnect
- Inbound frames are parsed and dispatched in delivery order; malformed
  frames are dropped without interrupting the stream
"""

import asyncio
import contextlib

import structlog

from events import (
    ConnectionStatus,
    EventDispatcher,
    EventType,
    MalformedEventError,
    parse_stream_event,
)
from transport.base import Transport, TransportError, TransportFactory
from transport.identity import resolve_transport_identity

logger = structlog.get_logger(__name__)

MAX_ATTEMPTS_REACHED = "Max reconnection attempts reached"


class ConnectionManager:
    """Owns one logical stream connection and its reconnect policy.

    Reconnect Policy:
        After an unexpected close the manager schedules attempt ``n`` after
        ``base_delay * n`` seconds, up to ``max_attempts``. A failed attempt
        goes back through the unexpected-close path, which schedules the
        next one. Once the cap is reached the status carries
        MAX_ATTEMPTS_REACHED and nothing is scheduled until a manual
        ``connect()``.

    Attributes:
        base_delay: Linear backoff unit in seconds.
        max_attempts: Automatic reconnect attempts before giving up.
        connections_opened: Number of transports successfully opened.
    """

    def __init__(
        self,
        dispatcher: EventDispatcher,
        transport_factory: TransportFactory,
        *,
        base_delay: float = 1.0,
        max_attempts: int = 5,
    ) -> None:
        """Initialize a disconnected manager.

        Args:
            dispatcher: Dispatcher receiving parsed events and status changes.
            transport_factory: Creates a fresh transport for each attempt.
            base_delay: Linear backoff unit in seconds.
            max_attempts: Automatic reconnect attempts before giving up.
        """
        self._dispatcher = dispatcher
        self._transport_factory = transport_factory
        self.base_delay = base_delay
        self.max_attempts = max_attempts
        self.connections_opened = 0

        self._status = ConnectionStatus(connected=False)
        self._transport: Transport | None = None
        self._identity: str | None = None
        self._attempts = 0
        self._opening: asyncio.Future[None] | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._reconnect_handle: asyncio.TimerHandle | None = None
        self._reconnect_task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def transport_identity(self) -> str | None:
        """Identity of the open transport, or None when disconnected."""
        return self._identity

    @property
    def reconnect_attempts(self) -> int:
        return self._attempts

    @property
    def is_connected(self) -> bool:
        return self._status.connected and self._transport is not None

    @property
    def is_connecting(self) -> bool:
        return self._opening is not None

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_handle is not None

    def reconnect_delay(self, attempt: int) -> float:
        """Delay in seconds before reconnect attempt ``attempt`` (1-based)."""
        return self.base_delay * attempt

    # ------------------------------------------------------------------
    # Public lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the stream connection if it is not already open.

        If an attempt is already in flight, waits for it to settle and
        returns without raising; the in-flight attempt's owner receives any
        error. A manual call cancels a pending reconnect timer and resets the
        attempt counter, which clears the max-attempts state.

        Raises:
            TransportError: If this call's own open attempt fails.
        """
        if self.is_connected:
            return

        if self._opening is not None:
            logger.debug("connect_joined_in_flight_attempt")
            await asyncio.wait({self._opening})
            return

        self._cancel_reconnect()
        self._attempts = 0
        await self._open()

    async def disconnect(self) -> None:
        """Close the connection and suppress any automatic reconnect."""
        self._cancel_reconnect()
        opening, self._opening = self._opening, None
        if opening is not None and not opening.done():
            opening.set_result(None)
        transport, self._transport = self._transport, None
        reader, self._reader_task = self._reader_task, None
        reconnecting, self._reconnect_task = self._reconnect_task, None
        self._identity = None
        self._attempts = 0

        self._set_status(ConnectionStatus(connected=False))

        if transport is not None:
            try:
                await transport.close()
            except TransportError as e:
                logger.warning("transport_close_failed", error=str(e))

        await _cancel_task(reader)
        await _cancel_task(reconnecting)

        logger.info("connection_disconnected", had_transport=transport is not None)

    # ------------------------------------------------------------------
    # Opening
    # ------------------------------------------------------------------

    async def _open(self) -> None:
        loop = asyncio.get_running_loop()
        settled: asyncio.Future[None] = loop.create_future()
        self._opening = settled

        transport = self._transport_factory()
        self._transport = transport
        logger.info(
            "connection_opening",
            url=transport.url,
            attempt=self._attempts,
        )

        try:
            await transport.open()
        except asyncio.CancelledError:
            self._settle(settled)
            if self._transport is transport:
                self._transport = None
            await transport.close()
            raise
        except TransportError as e:
            self._settle(settled)
            if self._transport is not transport:
                logger.info("connection_open_abandoned", error=str(e))
                return
            self._transport = None
            self._identity = None
            logger.error("connection_open_failed", url=transport.url, error=str(e))
            self._handle_close(error=f"Connection error: {e}")
            raise

        self._settle(settled)

        if self._transport is not transport:
            # disconnect() ran while the handshake was in flight
            logger.info("connection_open_abandoned")
            await transport.close()
            return

        self._identity = resolve_transport_identity(transport)
        self._attempts = 0
        self.connections_opened += 1
        self._reader_task = loop.create_task(
            self._read_loop(transport),
            name="leoforge-stream-reader",
        )
        self._set_status(ConnectionStatus(connected=True))
        logger.info(
            "connection_opened",
            url=transport.url,
            transport_identity=self._identity,
        )

    def _settle(self, settled: asyncio.Future[None]) -> None:
        if self._opening is settled:
            self._opening = None
        if not settled.done():
            settled.set_result(None)

    # ------------------------------------------------------------------
    # Receiving
    # ------------------------------------------------------------------

    async def _read_loop(self, transport: Transport) -> None:
        error: str | None = None
        try:
            async for raw in transport.messages():
                self._handle_frame(raw)
        except TransportError as e:
            error = str(e)

        if self._transport is not transport:
            return

        self._transport = None
        self._identity = None
        logger.warning("connection_closed_unexpectedly", error=error)
        try:
            await transport.close()
        except TransportError as e:
            logger.warning("transport_close_failed", error=str(e))

        if self._reader_task is not asyncio.current_task():
            # disconnect() or a manual connect() took over while closing
            return
        self._reader_task = None
        with_error = f"Connection error: {error}" if error else None
        self._handle_close(error=with_error)

    def _handle_frame(self, raw: str) -> None:
        try:
            event = parse_stream_event(raw)
        except MalformedEventError as e:
            logger.warning(
                "malformed_event_dropped",
                error=str(e),
                frame_preview=raw[:200],
            )
            return

        if event.type == EventType.CODE_CHUNK:
            logger.debug(
                "code_chunk_received",
                session_id=event.session_id,
                chunk_size=len(event.data or ""),
                timestamp=event.timestamp,
            )
        else:
            logger.debug(
                "event_received",
                session_id=event.session_id,
                event_type=event.type.value,
                timestamp=event.timestamp,
            )

        self._dispatcher.emit_event(event)

    # ------------------------------------------------------------------
    # Reconnecting
    # ------------------------------------------------------------------

    def _handle_close(self, error: str | None) -> None:
        self._set_status(ConnectionStatus(connected=False, error=error))
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if self._reconnect_handle is not None or self._opening is not None:
            return
        if self.is_connected:
            return

        if self._attempts >= self.max_attempts:
            logger.error("max_reconnect_attempts_reached", attempts=self._attempts)
            self._set_status(ConnectionStatus(connected=False, error=MAX_ATTEMPTS_REACHED))
            return

        self._attempts += 1
        delay = self.reconnect_delay(self._attempts)
        loop = asyncio.get_running_loop()
        self._reconnect_handle = loop.call_later(delay, self._fire_reconnect)
        logger.info(
            "reconnect_scheduled",
            attempt=self._attempts,
            max_attempts=self.max_attempts,
            delay_seconds=delay,
        )

    def _fire_reconnect(self) -> None:
        self._reconnect_handle = None
        loop = asyncio.get_running_loop()
        self._reconnect_task = loop.create_task(
            self._reconnect(),
            name="leoforge-stream-reconnect",
        )

    async def _reconnect(self) -> None:
        logger.info(
            "reconnect_attempt",
            attempt=self._attempts,
            max_attempts=self.max_attempts,
        )
        try:
            await self._open()
        except TransportError as e:
            # _open already routed the failure through _handle_close
            logger.warning("reconnect_failed", attempt=self._attempts, error=str(e))
        finally:
            if self._reconnect_task is asyncio.current_task():
                self._reconnect_task = None

    def _cancel_reconnect(self) -> None:
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None
            logger.debug("reconnect_cancelled")

    def _set_status(self, status: ConnectionStatus) -> None:
        self._status = status
        self._dispatcher.emit_status(status)


async def _cancel_task(task: asyncio.Task[None] | None) -> None:
    if task is None or task is asyncio.current_task() or task.done():
        return
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task
