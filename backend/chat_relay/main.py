"""Chat Relay Application.

This is the main entry point for the study-room chat relay. Visitors,
anonymous or linked to an external profile, share one live chat feed and
see how many people are online.

Modules:
    - chat: presence registry, message routing, history replay and the
      WebSocket gateway
    - auth: session lookup for linked identities
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from chat_relay.auth.router import router as auth_router
from chat_relay.chat.router import router as chat_router
from chat_relay.chat.service import ChatServer
from chat_relay.config import AppConfig, get_config

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# Per-request access lines and client connection chatter drown out the
# connect/disconnect lifecycle logs.
for _noisy in (
    "uvicorn.access",
    "httpx",
    "httpcore",
):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    # Startup
    chat: ChatServer = app.state.chat
    config = chat.config

    configured_level = getattr(logging, config.logging.level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())

    await chat.start()
    logger.info(
        f"Chat relay running on http://{config.server.host}:{config.server.port}"
    )

    yield  # Application runs here

    # Shutdown
    await chat.stop()
    logger.info("Application shutdown complete")


def create_app(config: Optional[AppConfig] = None) -> FastAPI:
    """Build a FastAPI app with its own ChatServer.

    Args:
        config: Settings to use. Defaults to the process-wide config.
    """
    config = config or get_config()

    app = FastAPI(
        title="Chat Relay API",
        description="Real-time presence and broadcast chat for the study room",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.chat = ChatServer(config)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    app.include_router(chat_router)
    app.include_router(auth_router)

    @app.get("/health")
    async def health() -> dict:
        """Health check endpoint.

        Returns:
            dict: Process status and current online count.
        """
        return {"status": "ok", "online": app.state.chat.gateway.online_count()}

    return app


app = create_app()
