"""Live session registry for a chat room.

A session exists for every open connection. Its state is either
``Anonymous`` (connected, no name yet) or ``Joined`` (has a username and a
color). Handlers check the state with ``isinstance`` so the anonymous case
is always spelled out.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Protocol, Union

from .protocol import UserInfo


class Outbox(Protocol):
    """Anything that can accept an outbound envelope without blocking."""

    def send(self, payload: dict) -> bool:
        ...


@dataclass(frozen=True)
class Anonymous:
    """Connected but not yet joined."""


@dataclass(frozen=True)
class Joined:
    """Joined the room under a display name."""
    username: str
    color: str
    externalId: Optional[str] = None


ConnectionState = Union[Anonymous, Joined]


@dataclass
class Session:
    """One live connection and its identity."""
    id: str
    outbox: Outbox
    state: ConnectionState = field(default_factory=Anonymous)

    @property
    def joined(self) -> Optional[Joined]:
        return self.state if isinstance(self.state, Joined) else None


class SessionRegistry:
    """Insertion-ordered set of live sessions keyed by connection id."""

    def __init__(self) -> None:
        self._sessions: Dict[str, Session] = {}

    def add(self, session: Session) -> Session:
        self._sessions[session.id] = session
        return session

    def remove(self, connection_id: str) -> Optional[Session]:
        return self._sessions.pop(connection_id, None)

    def get(self, connection_id: str) -> Optional[Session]:
        return self._sessions.get(connection_id)

    def __iter__(self) -> Iterator[Session]:
        # Snapshot so callers may mutate the registry while iterating
        return iter(list(self._sessions.values()))

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._sessions

    def visible_users(self) -> List[UserInfo]:
        """Joined sessions only; anonymous connections are counted but not listed."""
        return [
            UserInfo(username=s.state.username, color=s.state.color)
            for s in self._sessions.values()
            if isinstance(s.state, Joined)
        ]
