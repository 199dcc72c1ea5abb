"""Chat messages and the router that stamps them.

The router is the only place messages are created and the only writer of the
history buffer. It attaches the sender's identity (as a snapshot taken at
routing time), a unique id and a timestamp.
"""
from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from .identity import Identity
from .presence import PresenceRegistry

if TYPE_CHECKING:
    from .history import HistoryBuffer

logger = logging.getLogger(__name__)


class ChatMessage(BaseModel):
    """A routed chat message as stored in history and broadcast to clients.

    Attributes:
        id: Unique, strictly increasing id derived from the routing time (ms).
        sender: Copy of the sender's identity at routing time.
        text: Untrusted message text. Clients must render it as plain text.
        timestamp: UTC time the message was routed.
    """
    model_config = ConfigDict(frozen=True)

    id: int = Field(..., description="Unique message ID")
    sender: Identity = Field(..., description="Sender identity snapshot")
    text: str = Field(default="", description="Message text (plain data)")
    timestamp: datetime = Field(..., description="UTC routing time")


class MessageIdGenerator:
    """Millisecond timestamps, bumped by one on collision so ids never repeat."""

    def __init__(self) -> None:
        self._last = 0
        self._lock = threading.Lock()

    def next_id(self) -> int:
        with self._lock:
            candidate = int(time.time() * 1000)
            if candidate <= self._last:
                candidate = self._last + 1
            self._last = candidate
            return candidate


def normalize_text(payload: Any) -> str:
    """Extract message text from a bare string or a ``{"text": ...}`` mapping.

    Anything else, including a missing or non-string ``text``, becomes "".
    """
    if isinstance(payload, str):
        return payload
    if isinstance(payload, dict):
        text = payload.get("text")
        if isinstance(text, str):
            return text
    return ""


class MessageRouter:
    """Stamps inbound payloads into messages and records them in history."""

    def __init__(
        self,
        presence: PresenceRegistry,
        history: HistoryBuffer,
        ids: Optional[MessageIdGenerator] = None,
    ) -> None:
        self._presence = presence
        self._history = history
        self._ids = ids or MessageIdGenerator()

    def route(self, connection_id: str, payload: Any) -> Optional[ChatMessage]:
        """Build a message from *payload* sent by *connection_id*.

        Returns:
            The stamped message, or None if the sender is not registered
            (e.g. it disconnected while the message was in flight).
        """
        sender = self._presence.get(connection_id)
        if sender is None:
            logger.debug(f"[Router] Dropping message from unknown connection {connection_id}")
            return None

        message = ChatMessage(
            id=self._ids.next_id(),
            sender=sender.model_copy(),
            text=normalize_text(payload),
            timestamp=datetime.now(timezone.utc),
        )
        self._history.append(message)
        logger.debug(
            f"[Router] Routed message {message.id} from {sender.displayName}: {message.text[:50]}"
        )
        return message
