"""Wiring for the presence-and-broadcast engine.

One ``ChatServer`` is built per application and stored on ``app.state.chat``.
It owns the only shared mutable state (presence registry, history buffer,
session store); handlers reach it through the app rather than module globals.
"""
import logging
import random
from typing import Optional

from fastapi import Request, WebSocket

from chat_relay.auth.session import SessionStore
from chat_relay.config import AppConfig

from .gateway import ConnectionGateway
from .history import HistoryBuffer
from .identity import IdentityResolver
from .messages import MessageRouter
from .presence import PresenceRegistry

logger = logging.getLogger(__name__)


class ChatServer:
    """Container for the chat components built from one *AppConfig*."""

    def __init__(self, config: AppConfig, rng: Optional[random.Random] = None) -> None:
        self.config = config
        self.sessions = SessionStore(max_age_seconds=config.session.max_age_seconds)
        self.presence = PresenceRegistry()
        self.history = HistoryBuffer(config.chat.history_capacity)
        self.resolver = IdentityResolver(self.sessions, config.chat, rng=rng)
        self.router = MessageRouter(self.presence, self.history)
        self.gateway = ConnectionGateway(
            resolver=self.resolver,
            presence=self.presence,
            router=self.router,
            history=self.history,
            welcome_message=config.chat.welcome_message,
        )
        logger.info(
            "ChatServer ready (history_capacity=%d, session_max_age=%ss)",
            config.chat.history_capacity,
            config.session.max_age_seconds,
        )

    async def start(self) -> None:
        await self.sessions.start()

    async def stop(self) -> None:
        await self.sessions.stop()


def get_chat_server(request: Request) -> ChatServer:
    """FastAPI dependency returning the app's ChatServer."""
    return request.app.state.chat


def get_ws_chat_server(websocket: WebSocket) -> ChatServer:
    return websocket.app.state.chat
