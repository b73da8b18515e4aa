"""Chat router providing the room WebSocket endpoint.

This module provides:
    - WebSocket /ws: Real-time chat in the single room
    - WebSocket /party/{room_name}: Same room, path shape the browser client dials

The WebSocket protocol supports:
    - Visitor count on connect
    - Join with sticky per-username colors
    - History delivery on join
    - Join/leave announcements and live user list
    - Rate-limited chat broadcasting
    - Cursor relay to every other peer

Protocol Message Types (client -> server):
    - join: {username, color?, externalId?}
    - chat: {text}
    - set-color: {color}
    - cursor: {x, y}
"""
import asyncio
import logging
import uuid

from fastapi import APIRouter, WebSocket

from .broadcast import WebSocketOutbox
from .room import Room

logger = logging.getLogger(__name__)

router = APIRouter()


def is_allowed_origin(origin: str, public_domain: str) -> bool:
    """Origin gate applied before a WebSocket is accepted.

    Local development origins are always allowed; otherwise the origin must
    end with the configured public domain.
    """
    if "localhost" in origin or "127.0.0.1" in origin:
        return True
    return bool(public_domain) and origin.endswith(public_domain)


async def _run_session(websocket: WebSocket) -> None:
    """Drive one connection through connect -> messages -> disconnect."""
    config = websocket.app.state.config
    room: Room = websocket.app.state.room

    origin = websocket.headers.get("origin", "")
    if config.server.enforce_origin and not is_allowed_origin(origin, config.server.public_domain):
        logger.warning(f"[WS] Rejected connection from origin {origin!r}")
        # Closing before accept() makes the server answer the handshake with 403
        await websocket.close(code=1008)
        return

    connection_id = str(uuid.uuid4())
    outbox = WebSocketOutbox(
        websocket,
        queue_size=config.chat.outbound_queue_size,
        send_timeout=config.chat.send_timeout_seconds,
    )
    # Registered before accept() so the connection is live in the room by the
    # time the client sees the handshake complete; the writer starts after.
    await room.connect(connection_id, outbox)

    try:
        await websocket.accept()
        outbox.start()
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            frame = message.get("text")
            if frame is None:
                frame = message.get("bytes")
            logger.debug("[WS] %s received %d chars", connection_id, len(frame or ""))
            await room.handle_message(connection_id, frame)
    finally:
        outbox.stop()
        # The disconnect transition must run even if this task is being cancelled
        await asyncio.shield(room.disconnect(connection_id))
        logger.info(
            f"[WS] Connection {connection_id} closed. "
            f"Room now has {room.connection_count} connections"
        )


@router.websocket("/ws")
async def websocket_chat_endpoint(websocket: WebSocket) -> None:
    """WebSocket endpoint for the chat room.

    Protocol Flow:
        1. Client connects -> Server sends: {type: "visitor-count", count}
        2. Client sends: {type: "join", username}
           -> Server sends: {type: "history", messages: [...]}
           -> Server broadcasts: system-message, user-list, visitor-count
        3. Client sends: {type: "chat", text}
           -> Server broadcasts: {type: "chat-message", ...}
        4. Client sends: {type: "cursor", x, y}
           -> Server relays {type: "cursor", id, ...} to everyone else
        5. On disconnect -> Server broadcasts leave message, cursor-gone, user-list
    """
    await _run_session(websocket)


@router.websocket("/party/{room_name}")
async def party_chat_endpoint(websocket: WebSocket, room_name: str) -> None:
    """Alias of /ws; ``room_name`` is accepted but there is only one room."""
    logger.debug(f"[WS] Party path requested room {room_name!r}")
    await _run_session(websocket)
