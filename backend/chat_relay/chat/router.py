"""Chat router providing WebSocket and HTTP endpoints.

This module provides:
    - WebSocket /ws/chat: Real-time chat feed
    - GET /chat/history: Recent message buffer
    - GET /chat/online: Online count and participant list

Protocol Flow (see ``protocol`` for frame shapes):
    1. Client connects -> identity resolved from the session cookie
       -> Server broadcasts: {type: "presence", onlineCount, users}
       -> Server sends: {type: "history", messages: [...]}
       -> Server sends: {type: "welcome", message, identity}
    2. Client sends: {type: "chat-send", text}
       -> Server broadcasts: {type: "chat-broadcast", message: {...}}
    3. On disconnect -> Server broadcasts: {type: "presence", ...}
"""
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from . import protocol
from .gateway import ConnectionState
from .service import ChatServer, get_chat_server, get_ws_chat_server

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/chat/history")
async def get_message_history(chat: ChatServer = Depends(get_chat_server)) -> dict:
    """Get the recent message buffer, oldest first.

    Returns:
        JSON with messages array.
    """
    return protocol.history_event(chat.history.snapshot())


@router.get("/chat/online")
async def get_online_users(chat: ChatServer = Depends(get_chat_server)) -> dict:
    """Get the online count and the identities currently connected."""
    event = protocol.presence_event(chat.gateway.participants())
    return {"onlineCount": event["onlineCount"], "users": event["users"]}


async def _receive_frame(websocket: WebSocket) -> str:
    """Wait for the next text (or UTF-8 binary) frame."""
    message = await websocket.receive()
    if message["type"] == "websocket.disconnect":
        raise WebSocketDisconnect(message.get("code", 1000))
    text = message.get("text")
    if text is not None:
        return text
    return (message.get("bytes") or b"").decode("utf-8", errors="replace")


@router.websocket("/ws/chat")
async def websocket_chat_endpoint(
    websocket: WebSocket,
    chat: ChatServer = Depends(get_ws_chat_server),
) -> None:
    """WebSocket endpoint for the shared chat feed.

    Args:
        websocket: The WebSocket connection.
        chat: The app's ChatServer.
    """
    session_id = websocket.cookies.get(chat.config.session.cookie_name)
    connection = await chat.gateway.open(websocket, session_id)
    if connection.state is not ConnectionState.OPEN:
        return

    try:
        # Main message loop
        while True:
            frame = await _receive_frame(websocket)
            event_type, payload = protocol.parse_inbound(frame)

            if event_type == protocol.CHAT_SEND:
                await chat.gateway.receive(connection, payload)
                continue

            logger.debug(
                "[WS] Ignoring unknown event %r from %s", event_type, connection.connection_id
            )

    except WebSocketDisconnect:
        logger.info(f"[WS] {connection.connection_id} disconnected")
    except Exception as e:
        logger.warning(f"[WS] Transport error on {connection.connection_id}: {e}")
    finally:
        await chat.gateway.close(connection)
