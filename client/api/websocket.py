"""WebSocket relay of the live stream to UI clients.

Every connected UI receives each dispatched StreamEvent as
``{"kind": "event", "event": {...}}`` and each connection status change as
``{"kind": "status", "status": {...}}``. UIs may send ``{"type": "ping"}``
and ``{"type": "reset"}`` commands.
"""

import asyncio
import contextlib
from typing import Any

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from api.routes import get_client_context
from events import ConnectionStatus, StreamEvent

logger = structlog.get_logger(__name__)

websocket_router = APIRouter()


def _status_message(status: ConnectionStatus) -> dict[str, Any]:
    return {"kind": "status", "status": status.model_dump(mode="json")}


@websocket_router.websocket("/ws/stream")
async def stream_endpoint(websocket: WebSocket) -> None:
    """Relay dispatched events and status changes to one UI client.

    Args:
        websocket: The WebSocket connection.
    """
    await websocket.accept()
    context = get_client_context()
    logger.info("ui_websocket_connected")

    # Subscribe before sending the initial status so no change is missed
    queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()

    def relay_event(event: StreamEvent) -> None:
        queue.put_nowait({"kind": "event", "event": event.to_wire()})

    def relay_status(status: ConnectionStatus) -> None:
        queue.put_nowait(_status_message(status))

    detach_event = context.dispatcher.on_event(relay_event)
    detach_status = context.dispatcher.on_status_change(relay_status)

    try:
        await websocket.send_json(_status_message(context.connection.status))

        async def send_events() -> None:
            """Forward queued messages to the UI client."""
            try:
                while True:
                    message = await queue.get()
                    await websocket.send_json(message)
            except WebSocketDisconnect:
                logger.info("ui_websocket_disconnect_during_send")
            except Exception as e:
                logger.error("ui_websocket_send_error", error=str(e))

        async def receive_commands() -> None:
            """Receive and process commands from the UI client."""
            try:
                while True:
                    data = await websocket.receive_json()
                    if not isinstance(data, dict):
                        logger.warning("invalid_ui_ws_message")
                        continue
                    command_type = data.get("type")
                    logger.info("ui_command_received", command_type=command_type)

                    if command_type == "ping":
                        await websocket.send_json(
                            {"kind": "pong", "timestamp": data.get("timestamp")}
                        )
                    elif command_type == "reset":
                        context.controller.reset()
                        snapshot = context.controller.snapshot()
                        await websocket.send_json(
                            {
                                "kind": "state",
                                "state": snapshot.model_dump(mode="json", by_alias=True),
                            }
                        )
                    else:
                        logger.warning("unknown_ui_command", command_type=command_type)
            except WebSocketDisconnect:
                logger.info("ui_websocket_disconnect_during_receive")
            except Exception as e:
                logger.error("ui_websocket_receive_error", error=str(e))

        send_task = asyncio.create_task(send_events())
        receive_task = asyncio.create_task(receive_commands())

        # Either side finishing (usually a disconnect) ends the relay
        done, pending = await asyncio.wait(
            [send_task, receive_task],
            return_when=asyncio.FIRST_COMPLETED,
        )

        for task in pending:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    except WebSocketDisconnect:
        logger.info("ui_websocket_disconnected")
    except Exception as e:
        logger.error("ui_websocket_error", error=str(e))
    finally:
        detach_event()
        detach_status()
        logger.info("ui_websocket_cleanup_complete")
