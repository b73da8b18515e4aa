"""Real-time chat room: protocol, sessions, rate limiting, fan-out and routing."""

from .room import RETRO_COLORS, Room
from .router import router
from .wallets_router import router as wallets_router

__all__ = [
    "RETRO_COLORS",
    "Room",
    "router",
    "wallets_router",
]
