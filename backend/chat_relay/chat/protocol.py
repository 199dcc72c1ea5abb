"""Wire protocol for the chat WebSocket.

Inbound (client -> server), one JSON text frame per event:
    {"type": "chat-send", "text": "..."}

    A JSON string, or a frame that is not JSON at all, is shorthand for
    ``chat-send`` with that text. An object without ``type`` is also a
    ``chat-send``. Older clients' event names are mapped by ``EVENT_ALIASES``.

Outbound (server -> client):
    {"type": "presence", "onlineCount": n, "users": [identity, ...]}
    {"type": "history", "messages": [message, ...]}
    {"type": "welcome", "message": "...", "identity": identity}
    {"type": "chat-broadcast", "message": message}
"""
import json
from typing import Any, Dict, Iterable, Tuple

from .identity import Identity
from .messages import ChatMessage

CHAT_SEND = "chat-send"
CHAT_BROADCAST = "chat-broadcast"
HISTORY = "history"
PRESENCE = "presence"
WELCOME = "welcome"

EVENT_ALIASES = {
    "chat_message": CHAT_SEND,
    "chat message": CHAT_SEND,
}


def parse_inbound(frame: str) -> Tuple[str, Any]:
    """Decode a text frame into ``(event_type, payload)``."""
    try:
        data = json.loads(frame)
    except (TypeError, ValueError):
        return CHAT_SEND, frame

    if isinstance(data, dict):
        event_type = data.get("type") or CHAT_SEND
        if not isinstance(event_type, str):
            return "", data
        return EVENT_ALIASES.get(event_type, event_type), data
    if isinstance(data, str):
        return CHAT_SEND, data
    # Numbers, lists, null: still a send, with no usable text
    return CHAT_SEND, data


def presence_event(users: Iterable[Identity]) -> Dict[str, Any]:
    users = list(users)
    return {
        "type": PRESENCE,
        "onlineCount": len(users),
        "users": [u.model_dump(mode="json") for u in users],
    }


def history_event(messages: Iterable[ChatMessage]) -> Dict[str, Any]:
    return {
        "type": HISTORY,
        "messages": [m.model_dump(mode="json") for m in messages],
    }


def welcome_event(text: str, identity: Identity) -> Dict[str, Any]:
    return {
        "type": WELCOME,
        "message": text,
        "identity": identity.model_dump(mode="json"),
    }


def broadcast_event(message: ChatMessage) -> Dict[str, Any]:
    return {
        "type": CHAT_BROADCAST,
        "message": message.model_dump(mode="json"),
    }
