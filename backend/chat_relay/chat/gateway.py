"""Per-connection lifecycle driver for the chat relay.

Each WebSocket goes through ``connecting -> open -> closed``:

    open:    resolve identity, register presence, broadcast presence to all,
             send history and a welcome to the joiner only.
    receive: route the payload and broadcast the resulting message to every
             open connection, sender included.
    close:   remove presence and broadcast the new presence to the rest.
             Idempotent.

Ordering:
    All fan-out happens under a single ``asyncio.Lock``, so every connection
    observes events in the same order, and a joiner's history snapshot is
    always sent before any message routed after it registered. Identity
    resolution happens before the lock is taken.

Failures:
    Nothing raised while handling one connection escapes to the others.
    A connection whose send fails is closed after the fan-out completes.
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from fastapi import WebSocket

from . import protocol
from .history import HistoryBuffer
from .identity import Identity, IdentityResolver
from .messages import ChatMessage, MessageRouter
from .presence import PresenceRegistry

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


@dataclass(eq=False)
class ChatConnection:
    """One live transport session and the identity resolved for it."""
    connection_id: str
    websocket: WebSocket
    state: ConnectionState = ConnectionState.CONNECTING
    identity: Optional[Identity] = None


class ConnectionGateway:
    """Drives connection lifecycles against the shared presence and history."""

    def __init__(
        self,
        resolver: IdentityResolver,
        presence: PresenceRegistry,
        router: MessageRouter,
        history: HistoryBuffer,
        welcome_message: str = "",
    ) -> None:
        self._resolver = resolver
        self._presence = presence
        self._router = router
        self._history = history
        self._welcome_message = welcome_message

        # connection_id -> open connection
        self._connections: Dict[str, ChatConnection] = {}
        self._broadcast_lock = asyncio.Lock()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def open(
        self, websocket: WebSocket, session_id: Optional[str] = None
    ) -> ChatConnection:
        """Accept the handshake and bring the connection to ``open``.

        If the handshake fails the returned connection is ``closed`` and
        nothing was registered.
        """
        connection = ChatConnection(
            connection_id=str(uuid.uuid4()),
            websocket=websocket,
        )

        try:
            await websocket.accept()
        except Exception as e:
            logger.warning(f"[Gateway] Handshake failed for {connection.connection_id}: {e}")
            connection.state = ConnectionState.CLOSED
            return connection

        try:
            identity = await self._resolver.resolve(connection.connection_id, session_id)
        except Exception as e:
            logger.warning(f"[Gateway] Identity resolution failed, using anonymous: {e}")
            identity = self._resolver.anonymous(connection.connection_id)

        async with self._broadcast_lock:
            connection.identity = identity
            count = self._presence.register(connection.connection_id, identity)
            self._connections[connection.connection_id] = connection
            connection.state = ConnectionState.OPEN
            logger.info(
                f"[Gateway] {connection.connection_id} open as {identity.displayName} "
                f"({identity.kind}). Online: {count}"
            )

            dead = await self._fan_out(protocol.presence_event(self._presence.snapshot()))

            history = self._history.snapshot()
            joined = (
                await self._safe_send(connection, protocol.history_event(history))
                and await self._safe_send(
                    connection, protocol.welcome_event(self._welcome_message, identity)
                )
            )
            if not joined and connection not in dead:
                dead.append(connection)

        await self._reap(dead)
        return connection

    async def receive(
        self, connection: ChatConnection, payload: Any
    ) -> Optional[ChatMessage]:
        """Route an inbound chat payload and broadcast the result.

        Returns the broadcast message, or None if it was dropped.
        """
        async with self._broadcast_lock:
            try:
                message = self._router.route(connection.connection_id, payload)
            except Exception:
                logger.exception(
                    f"[Gateway] Failed to route message from {connection.connection_id}"
                )
                return None
            if message is None:
                return None
            dead = await self._fan_out(protocol.broadcast_event(message))

        await self._reap(dead)
        return message

    async def close(self, connection: ChatConnection) -> None:
        """Move the connection to ``closed``. Safe to call more than once."""
        if connection.state is ConnectionState.CLOSED:
            return
        connection.state = ConnectionState.CLOSED

        # Deregister before any await so a cancelled handler can't leave a
        # stale presence entry behind.
        self._connections.pop(connection.connection_id, None)
        removed = self._presence.remove(connection.connection_id)
        if removed is None:
            return
        logger.info(
            f"[Gateway] {connection.connection_id} ({removed.displayName}) closed. "
            f"Online: {self._presence.count()}"
        )

        async with self._broadcast_lock:
            dead = await self._fan_out(protocol.presence_event(self._presence.snapshot()))

        await self._reap(dead)

    # =========================================================================
    # Broadcast
    # =========================================================================

    async def _fan_out(self, event: dict) -> List[ChatConnection]:
        """Send concurrently to all open connections. Caller holds the lock.

        Returns:
            Connections whose send failed.
        """
        targets = [
            c for c in self._connections.values()
            if c.state is ConnectionState.OPEN
        ]
        if not targets:
            return []

        results = await asyncio.gather(
            *[self._safe_send(conn, event) for conn in targets],
            return_exceptions=True
        )
        return [
            conn for conn, success in zip(targets, results)
            if success is not True
        ]

    async def _safe_send(self, connection: ChatConnection, event: dict) -> bool:
        """Send an event to one connection.

        Returns:
            True if successful, False if the connection failed.
        """
        try:
            await connection.websocket.send_json(event)
            return True
        except Exception as e:
            logger.debug(f"[Gateway] Failed to send to {connection.connection_id}: {e}")
            return False

    async def _reap(self, dead: List[ChatConnection]) -> None:
        for conn in dead:
            logger.debug(f"[Gateway] Removing dead connection {conn.connection_id}")
            await self.close(conn)

    # =========================================================================
    # Queries
    # =========================================================================

    def online_count(self) -> int:
        return self._presence.count()

    def participants(self) -> List[Identity]:
        return self._presence.snapshot()
