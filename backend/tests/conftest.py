"""Shared test fixtures and configuration for backend tests."""
import random

import pytest
from fastapi.testclient import TestClient

from chat_relay.auth.session import SessionStore
from chat_relay.chat.gateway import ConnectionGateway
from chat_relay.chat.history import HistoryBuffer
from chat_relay.chat.identity import IdentityResolver
from chat_relay.chat.messages import MessageRouter
from chat_relay.chat.presence import PresenceRegistry
from chat_relay.config import AppConfig, ChatSettings
from chat_relay.main import create_app


class FakeWebSocket:
    """Minimal stand-in for fastapi.WebSocket used by gateway tests."""

    def __init__(self, fail_accept: bool = False) -> None:
        self.fail_accept = fail_accept
        self.fail_send = False
        self.accepted = False
        self.sent: list = []

    async def accept(self) -> None:
        if self.fail_accept:
            raise RuntimeError("handshake failed")
        self.accepted = True

    async def send_json(self, data: dict) -> None:
        if self.fail_send:
            raise RuntimeError("connection reset")
        self.sent.append(data)

    def of_type(self, event_type: str) -> list:
        return [e for e in self.sent if e["type"] == event_type]


@pytest.fixture
def chat_settings():
    return ChatSettings(history_capacity=3, welcome_message="hello there")


@pytest.fixture
def sessions():
    return SessionStore(max_age_seconds=3600)


@pytest.fixture
def presence():
    return PresenceRegistry()


@pytest.fixture
def history(chat_settings):
    return HistoryBuffer(chat_settings.history_capacity)


@pytest.fixture
def resolver(sessions, chat_settings):
    return IdentityResolver(sessions, chat_settings, rng=random.Random(1234))


@pytest.fixture
def message_router(presence, history):
    return MessageRouter(presence, history)


@pytest.fixture
def gateway(resolver, presence, message_router, history, chat_settings):
    return ConnectionGateway(
        resolver=resolver,
        presence=presence,
        router=message_router,
        history=history,
        welcome_message=chat_settings.welcome_message,
    )


@pytest.fixture
def app_config():
    return AppConfig(chat={"history_capacity": 5, "welcome_message": "hello there"})


@pytest.fixture
def app(app_config):
    return create_app(app_config)


@pytest.fixture
def api_client(app):
    """Provide a TestClient for a fresh app with its own chat state.

    Entered as a context manager so every WebSocket session shares the
    lifespan's event loop (the gateway's broadcast lock lives there).
    """
    with TestClient(app) as client:
        yield client
