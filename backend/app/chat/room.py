"""Room controller for the single NekoChat broadcast room.

The Room owns every piece of shared state: the live session registry, the
per-connection rate limiter, and the persistent store holding chat history,
sticky user colors, the wallet log and the visitor counter.

Connection lifecycle:
    connect     -> Anonymous      (visitor counter bumped, count unicast)
    join        -> Joined         (history unicast, join announced)
    chat / set-color / cursor     (Joined only; Anonymous is dropped)
    disconnect  -> removed        (leave announced if Joined, user list resent)

Thread Safety:
    All transitions run on a single event loop under one asyncio.Lock, so
    each inbound event is handled atomically and in arrival order. Fan-out
    only enqueues, it never waits on the network while the lock is held.

Failure Semantics:
    Malformed or out-of-state messages are dropped without a reply. Store
    failures are logged and the room carries on with its in-memory mirror
    of the affected key, so live delivery never depends on persistence.
"""
import asyncio
import copy
import logging
import random
import re
import time
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import BaseModel

from app.config import ChatSettings
from app.storage import KeyValueStore, StorageError

from .broadcast import FanOut
from .protocol import (
    ChatEntry,
    ChatEnvelope,
    ChatMessage,
    CursorEnvelope,
    CursorGoneMessage,
    CursorMessage,
    HistoryMessage,
    JoinEnvelope,
    SetColorEnvelope,
    SystemEntry,
    SystemMessage,
    UserListMessage,
    VisitorCountMessage,
    load_history,
    parse_inbound,
)
from .rate_limiter import SlidingWindowRateLimiter
from .sessions import Joined, Outbox, Session, SessionRegistry

logger = logging.getLogger(__name__)

# =============================================================================
# Constants
# =============================================================================

# Persistent keys
VISITOR_COUNT_KEY = "visitorCount"
CHAT_HISTORY_KEY = "chatHistory"
USER_COLORS_KEY = "userColors"
WALLET_LOG_KEY = "walletLog"

# Retro color palette for usernames
RETRO_COLORS = [
    "#ff00ff", "#00ffff", "#ffff00", "#ff6600",
    "#00ff00", "#ff0099", "#9900ff", "#ff3333",
    "#33ff33", "#3399ff", "#ff66cc", "#66ffcc",
    "#ffcc00", "#cc66ff", "#66ccff", "#ff9966",
]

RATE_LIMIT_NOTICE = "You're chatting too fast! 🐢"

_USERNAME_STRIP = re.compile(r"[<>/&\"']")


def sanitize_username(raw: str, max_length: int = 20) -> str:
    """Strip HTML metacharacters and slashes, trim, then cap the length."""
    return _USERNAME_STRIP.sub("", raw).strip()[:max_length]


def sanitize_text(raw: str, max_length: int = 500) -> str:
    """Escape angle brackets, then cap the length."""
    return raw.replace("<", "&lt;").replace(">", "&gt;")[:max_length]


# =============================================================================
# Room
# =============================================================================


class Room:
    """The single logical chat room.

    Args:
        store: Durable key/value store for the four persistent keys.
        settings: Chat limits (history caps, rate limit, lengths).
        rng: Random source for palette picks (seedable in tests).
        clock: Monotonic clock for the rate limiter.
    """

    def __init__(
        self,
        store: KeyValueStore,
        settings: Optional[ChatSettings] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.settings = settings or ChatSettings()
        self.sessions = SessionRegistry()
        self.fanout = FanOut(self.sessions)
        self.rate_limiter = SlidingWindowRateLimiter(
            window_seconds=self.settings.rate_limit_window_seconds,
            max_messages=self.settings.rate_limit_max_messages,
            clock=clock,
        )
        self._rng = rng or random.Random()
        self._lock = asyncio.Lock()

        # Last known value of every persistent key, used when the store fails
        self._mirror: Dict[str, Any] = {
            VISITOR_COUNT_KEY: 0,
            CHAT_HISTORY_KEY: [],
            USER_COLORS_KEY: {},
            WALLET_LOG_KEY: {},
        }

    # =========================================================================
    # Persistence helpers
    # =========================================================================

    def _read(self, key: str) -> Any:
        try:
            value = self.store.get(key)
        except StorageError:
            logger.exception(f"[Room] Read of {key} failed, using in-memory state")
            return copy.deepcopy(self._mirror[key])
        if value is None:
            return copy.deepcopy(self._mirror[key])
        self._mirror[key] = value
        return copy.deepcopy(value)

    def _write(self, key: str, value: Any) -> None:
        self._mirror[key] = copy.deepcopy(value)
        try:
            self.store.put(key, value)
        except StorageError:
            logger.exception(f"[Room] Write of {key} failed, change kept in memory only")

    def start(self) -> None:
        """Seed the visitor counter the first time a store is used."""
        try:
            existing = self.store.get(VISITOR_COUNT_KEY)
        except StorageError:
            logger.exception("[Room] Could not read visitor count on start")
            return
        if existing is None:
            self._write(VISITOR_COUNT_KEY, 0)
        else:
            self._mirror[VISITOR_COUNT_KEY] = existing
        logger.info(f"[Room] Started (visitorCount={self._mirror[VISITOR_COUNT_KEY]})")

    # =========================================================================
    # Read-only views
    # =========================================================================

    def history(self) -> List[Union[ChatEntry, SystemEntry]]:
        """Stored history, oldest first."""
        return load_history(self._read(CHAT_HISTORY_KEY))

    def user_colors(self) -> Dict[str, str]:
        return dict(self._read(USER_COLORS_KEY))

    def wallet_log(self) -> Dict[str, str]:
        """Username -> last external identifier seen on join."""
        return dict(self._read(WALLET_LOG_KEY))

    def visitor_count(self) -> int:
        return int(self._read(VISITOR_COUNT_KEY))

    def user_list(self) -> UserListMessage:
        """Visible users are Joined sessions; total counts every connection."""
        return UserListMessage(users=self.sessions.visible_users(), total=len(self.sessions))

    @property
    def connection_count(self) -> int:
        return len(self.sessions)

    # =========================================================================
    # Transport events
    # =========================================================================

    async def connect(self, connection_id: str, outbox: Outbox) -> Session:
        """Register a new connection as Anonymous and send it the visitor count."""
        async with self._lock:
            session = self.sessions.add(Session(id=connection_id, outbox=outbox))
            count = self.visitor_count() + 1
            self._write(VISITOR_COUNT_KEY, count)
            self.fanout.send(session, VisitorCountMessage(count=count))
            logger.info(
                f"[Room] Connection {connection_id} opened "
                f"({len(self.sessions)} live, visitor #{count})"
            )
            return session

    async def handle_message(self, connection_id: str, raw: Any) -> None:
        """Apply one inbound frame. Never raises for bad input."""
        envelope = parse_inbound(raw)
        if envelope is None:
            return

        async with self._lock:
            session = self.sessions.get(connection_id)
            if session is None:
                return

            if isinstance(envelope, JoinEnvelope):
                self._on_join(session, envelope)
            elif isinstance(envelope, ChatEnvelope):
                self._on_chat(session, envelope)
            elif isinstance(envelope, SetColorEnvelope):
                self._on_set_color(session, envelope)
            elif isinstance(envelope, CursorEnvelope):
                self._on_cursor(session, envelope)

    async def disconnect(self, connection_id: str) -> None:
        """Tear down a connection's session and tell everyone else."""
        async with self._lock:
            self.rate_limiter.reset(connection_id)
            session = self.sessions.remove(connection_id)
            if session is None:
                return

            joined = session.joined
            if joined is not None:
                self._announce(f"✧ {joined.username} has left the chat ✧")
                self.fanout.broadcast(CursorGoneMessage(id=connection_id))
                logger.info(f"[Room] {joined.username} left ({connection_id})")
            else:
                logger.info(f"[Room] Anonymous connection {connection_id} closed")

            self._broadcast_user_list()

    # =========================================================================
    # Message handlers
    # =========================================================================

    def _on_join(self, session: Session, envelope: JoinEnvelope) -> None:
        username = sanitize_username(envelope.username, self.settings.max_username_length)
        if not username:
            return

        color = self._resolve_color(username, envelope.color)

        if envelope.externalId:
            wallets = self._read(WALLET_LOG_KEY)
            wallets[username] = envelope.externalId
            self._write(WALLET_LOG_KEY, wallets)

        logger.info(f"[Room] JOIN {username} (externalId={envelope.externalId or 'None'})")
        session.state = Joined(username=username, color=color, externalId=envelope.externalId)

        limit = self.settings.history_on_join
        recent = self.history()[-limit:] if limit > 0 else []
        self.fanout.send(session, HistoryMessage(messages=recent))

        self._announce(f"✦ {username} has entered the chat ✦")
        self._broadcast_user_list()
        self.fanout.broadcast(VisitorCountMessage(count=self.visitor_count()))

    def _resolve_color(self, username: str, requested: Optional[str]) -> str:
        """Client color wins, then the stored sticky color, then a palette pick."""
        colors = self._read(USER_COLORS_KEY)
        if requested:
            color = requested
        elif username in colors:
            return colors[username]
        else:
            color = self._rng.choice(RETRO_COLORS)
        colors[username] = color
        self._write(USER_COLORS_KEY, colors)
        return color

    def _on_chat(self, session: Session, envelope: ChatEnvelope) -> None:
        joined = session.joined
        if joined is None:
            return

        if not self.rate_limiter.allow(session.id):
            logger.info(f"[Room] Rate limited {joined.username} ({session.id})")
            self.fanout.send(session, SystemMessage(text=RATE_LIMIT_NOTICE))
            return

        text = sanitize_text(envelope.text, self.settings.max_message_length)
        if not text.strip():
            return

        entry = ChatEntry(username=joined.username, color=joined.color, text=text)
        self.fanout.broadcast(
            ChatMessage(
                username=entry.username,
                color=entry.color,
                text=entry.text,
                timestamp=entry.timestamp,
            )
        )
        self._append_history(entry)

    def _on_set_color(self, session: Session, envelope: SetColorEnvelope) -> None:
        joined = session.joined
        if joined is None:
            return

        session.state = replace(joined, color=envelope.color)
        colors = self._read(USER_COLORS_KEY)
        colors[joined.username] = envelope.color
        self._write(USER_COLORS_KEY, colors)
        self._broadcast_user_list()

    def _on_cursor(self, session: Session, envelope: CursorEnvelope) -> None:
        joined = session.joined
        if joined is None:
            return

        self.fanout.broadcast(
            CursorMessage(
                id=session.id,
                username=joined.username,
                color=joined.color,
                x=envelope.x,
                y=envelope.y,
            ),
            exclude=session.id,
        )

    # =========================================================================
    # Internals
    # =========================================================================

    def _announce(self, text: str) -> None:
        """Broadcast a system line and record it in history."""
        entry = SystemEntry(text=text)
        self.fanout.broadcast(SystemMessage(text=entry.text, timestamp=entry.timestamp))
        self._append_history(entry)

    def _append_history(self, entry: BaseModel) -> None:
        history = self._read(CHAT_HISTORY_KEY)
        history.append(entry.model_dump(mode="json"))
        self._write(CHAT_HISTORY_KEY, history[-self.settings.max_history:])

    def _broadcast_user_list(self) -> None:
        self.fanout.broadcast(self.user_list())
