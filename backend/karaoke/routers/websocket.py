import json

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from karaoke.error_handlers import WebSocketErrorHandler
from karaoke.exceptions import ErrorCode
from karaoke.services.gateway import ChannelGateway, Connection
from karaoke.utils.logging_config import websocket_logger
from karaoke.utils.rate_limit import check_websocket_rate_limit, cleanup_websocket_rate_limit

router = APIRouter(tags=["WebSocket"])


@router.websocket("/ws")
async def websocket_channel(websocket: WebSocket):
    """
    Realtime channel shared by displays and controllers.

    Clients join rooms by sending events, so one connection can follow
    several rooms. Every frame is ``{"event": ..., "data": ...}``.
    """
    gateway: ChannelGateway = websocket.app.state.gateway
    max_size = websocket.app.state.settings.MAX_MESSAGE_SIZE

    await websocket.accept()
    conn = Connection(websocket)
    websocket_logger.info("WebSocket connected", extra={"connection_id": conn.id})

    try:
        while True:
            frame = await websocket.receive()
            if frame["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(frame.get("code", 1000), frame.get("reason"))
            raw = frame.get("text")
            if raw is None:
                await WebSocketErrorHandler.send_error_message(
                    websocket, ErrorCode.INVALID_INPUT, "Binary frames are not supported, send JSON text"
                )
                continue
            if len(raw) > max_size:
                await WebSocketErrorHandler.send_error_message(
                    websocket, ErrorCode.INVALID_INPUT, f"Message exceeds {max_size} bytes"
                )
                continue

            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                await WebSocketErrorHandler.send_error_message(
                    websocket, ErrorCode.INVALID_INPUT, "Message is not valid JSON"
                )
                continue
            if not isinstance(message, dict):
                await WebSocketErrorHandler.send_error_message(
                    websocket, ErrorCode.INVALID_INPUT, "Message must be an object with an event name"
                )
                continue

            event = message.get("event")

            is_allowed, error_msg = check_websocket_rate_limit(conn.id, event)
            if not is_allowed:
                await WebSocketErrorHandler.send_error_message(
                    websocket, ErrorCode.RATE_LIMIT_EXCEEDED, error_msg or "Rate limit exceeded"
                )
                continue

            websocket_logger.debug(
                "WebSocket message received",
                extra={"connection_id": conn.id, "event": event},
            )
            await gateway.dispatch(conn, event, message.get("data"))

    except WebSocketDisconnect:
        websocket_logger.info(
            "WebSocket disconnected",
            extra={"connection_id": conn.id, "rooms": sorted(conn.rooms)},
        )
    except Exception as e:
        websocket_logger.error(
            "WebSocket error",
            extra={"connection_id": conn.id, "error": str(e), "error_type": type(e).__name__},
        )
    finally:
        gateway.disconnect(conn)
        cleanup_websocket_rate_limit(conn.id)
