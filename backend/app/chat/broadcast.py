"""Outbound delivery for the chat room.

Two pieces:
    - WebSocketOutbox: a bounded per-connection queue drained by its own
      writer task, so a slow or dead peer never stalls the room.
    - FanOut: serializes an envelope once and hands it to every session's
      outbox (optionally skipping one).

Performance Notes:
    - Enqueueing never awaits; the room can fan out while holding its lock
    - Each network write is bounded by asyncio.wait_for(send_timeout)
    - A full queue drops the envelope for that peer only (best effort)
"""
import asyncio
import logging
from typing import Optional

from fastapi import WebSocket
from pydantic import BaseModel

from .sessions import Session, SessionRegistry

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 256
DEFAULT_SEND_TIMEOUT = 5.0


class WebSocketOutbox:
    """Non-blocking send side of one WebSocket connection."""

    def __init__(
        self,
        websocket: WebSocket,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        send_timeout: float = DEFAULT_SEND_TIMEOUT,
    ) -> None:
        self.websocket = websocket
        self.send_timeout = send_timeout
        self.alive = True
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._writer: Optional[asyncio.Task] = None

    def start(self) -> None:
        """Spawn the writer task. Must be called from the event loop."""
        if self._writer is None:
            self._writer = asyncio.create_task(self._drain())

    def send(self, payload: dict) -> bool:
        """Queue a payload for delivery.

        Returns:
            True if queued, False if the peer is dead or backed up.
        """
        if not self.alive:
            return False
        try:
            self._queue.put_nowait(payload)
        except asyncio.QueueFull:
            logger.debug("Outbound queue full, dropping %s", payload.get("type"))
            return False
        return True

    async def _drain(self) -> None:
        while True:
            payload = await self._queue.get()
            try:
                await asyncio.wait_for(
                    self.websocket.send_json(payload), timeout=self.send_timeout
                )
            except Exception as e:
                logger.debug(f"Failed to send to connection: {e!r}")
                self.alive = False
                return

    def stop(self) -> None:
        """Cancel the writer task; anything still queued is discarded."""
        self.alive = False
        if self._writer is not None:
            self._writer.cancel()
            self._writer = None


class FanOut:
    """Delivers envelopes to the sessions of one registry."""

    def __init__(self, registry: SessionRegistry) -> None:
        self.registry = registry

    def send(self, session: Session, message: BaseModel) -> bool:
        """Unicast one envelope to a single session."""
        return session.outbox.send(message.model_dump(mode="json"))

    def broadcast(self, message: BaseModel, exclude: Optional[str] = None) -> int:
        """Deliver an envelope to every session except ``exclude``.

        Args:
            message: The outbound envelope.
            exclude: Connection id to skip (e.g. the sender of a cursor move).

        Returns:
            Number of sessions the envelope was queued for.
        """
        payload = message.model_dump(mode="json")
        delivered = 0
        for session in self.registry:
            if session.id == exclude:
                continue
            if session.outbox.send(payload):
                delivered += 1
        return delivered
