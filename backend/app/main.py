"""NekoChat Backend Application.

This is the main entry point for the NekoChat backend service: a single
retro chat room with a live user list and shared cursors.

Modules:
    - chat: WebSocket room controller, protocol and fan-out
    - storage: Persistent key/value state (DuckDB)
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request

from app.chat import Room, router as chat_router, wallets_router
from app.config import AppConfig, get_config
from app.storage import KeyValueStore, create_store

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# Per-request access lines drown out room events.
for _noisy in (
    "uvicorn.access",
    "websockets",
    "websockets.protocol",
):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


def create_app(
    config: Optional[AppConfig] = None,
    store: Optional[KeyValueStore] = None,
) -> FastAPI:
    """Build the application.

    Args:
        config: Settings to use; defaults to the process-wide config.
        store: State store to use; defaults to the configured backend.
            A store passed in is owned by the caller and not closed.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager for startup/shutdown events."""
        # Startup
        cfg = config or get_config()

        # Apply configured log level to root logger so that
        # `logging.level: "debug"` in nekochat.settings.yaml activates DEBUG output.
        configured_level = getattr(logging, cfg.logging.level.upper(), None)
        if configured_level is not None:
            logging.getLogger().setLevel(configured_level)
            logger.info("Root logger level set to %s", cfg.logging.level.upper())

        room_store = store or create_store(cfg.storage)
        room = Room(room_store, settings=cfg.chat)
        room.start()

        app.state.config = cfg
        app.state.room = room
        logger.info(f"NekoChat is live on http://{cfg.server.host}:{cfg.server.port}")

        yield  # Application runs here

        # Shutdown
        if store is None:
            room_store.close()
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="NekoChat API",
        description="Single-room real-time chat with presence and shared cursors",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.include_router(chat_router)
    app.include_router(wallets_router)

    @app.get("/health")
    async def health(request: Request) -> dict:
        """Health check endpoint.

        Returns:
            dict: Status and the number of live connections.
        """
        room: Room = request.app.state.room
        return {"status": "ok", "connections": room.connection_count}

    return app


app = create_app()


if __name__ == "__main__":
    _config = get_config()
    uvicorn.run("app.main:app", host=_config.server.host, port=_config.server.port)
