"""Envelope vocabulary exchanged over the chat WebSocket.

Every frame is a JSON object with a ``type`` tag. Inbound envelopes are
parsed into a discriminated union; anything that fails to parse is dropped
by returning ``None`` rather than raising, so a bad frame never reaches the
room controller.

Inbound (client -> room):
    - join: {username, color?, externalId?}   (``wallet`` accepted as alias)
    - chat: {text}
    - set-color: {color}
    - cursor: {x, y}   (percent of viewport)

Outbound (room -> clients):
    - visitor-count, history, system-message, chat-message,
      user-list, cursor, cursor-gone
"""
import json
import logging
import time
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, Field, TypeAdapter, ValidationError, field_validator

logger = logging.getLogger(__name__)


def now_ms() -> int:
    """Milliseconds since the epoch, the unit every timestamp uses."""
    return int(time.time() * 1000)


# =============================================================================
# Inbound envelopes
# =============================================================================


class JoinEnvelope(BaseModel):
    type: Literal["join"]
    username: str = ""
    color: Optional[str] = None
    externalId: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("externalId", "wallet"),
        description="Opaque external identifier (e.g. a wallet address)",
    )

    @field_validator("color", "externalId")
    @classmethod
    def _blank_is_missing(cls, value: Optional[str]) -> Optional[str]:
        return value or None


class ChatEnvelope(BaseModel):
    type: Literal["chat"]
    text: str = ""


class SetColorEnvelope(BaseModel):
    type: Literal["set-color"]
    color: str = Field(..., min_length=1)


class CursorEnvelope(BaseModel):
    type: Literal["cursor"]
    x: float
    y: float


InboundEnvelope = Annotated[
    Union[JoinEnvelope, ChatEnvelope, SetColorEnvelope, CursorEnvelope],
    Field(discriminator="type"),
]

_inbound_adapter: TypeAdapter = TypeAdapter(InboundEnvelope)


def parse_inbound(raw: Any) -> Optional[BaseModel]:
    """Parse a raw frame (text or already-decoded JSON) into an envelope.

    Returns:
        The typed envelope, or None when the frame is malformed.
    """
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except (ValueError, RecursionError):
            logger.debug("Dropping non-JSON frame")
            return None

    try:
        return _inbound_adapter.validate_python(raw)
    except ValidationError as e:
        logger.debug("Dropping malformed envelope: %s", e.error_count())
        return None


# =============================================================================
# History entries
# =============================================================================


class ChatEntry(BaseModel):
    """A user's chat line as stored in history."""
    msgType: Literal["chat"] = "chat"
    username: str
    color: str
    text: str
    timestamp: int = Field(default_factory=now_ms)


class SystemEntry(BaseModel):
    """A room announcement (join/leave) as stored in history."""
    msgType: Literal["system"] = "system"
    text: str
    timestamp: int = Field(default_factory=now_ms)


HistoryEntry = Annotated[Union[ChatEntry, SystemEntry], Field(discriminator="msgType")]

_history_adapter: TypeAdapter = TypeAdapter(List[HistoryEntry])


def load_history(raw: Any) -> List[Union[ChatEntry, SystemEntry]]:
    """Rebuild typed history from its stored JSON form.

    Entries that no longer validate are skipped instead of poisoning the
    whole history.
    """
    if not isinstance(raw, list):
        return []
    try:
        return _history_adapter.validate_python(raw)
    except ValidationError:
        entries = []
        for item in raw:
            try:
                entries.append(_history_adapter.validate_python([item])[0])
            except ValidationError:
                logger.warning("Skipping unreadable history entry")
        return entries


# =============================================================================
# Outbound envelopes
# =============================================================================


class UserInfo(BaseModel):
    username: str
    color: str


class VisitorCountMessage(BaseModel):
    type: Literal["visitor-count"] = "visitor-count"
    count: int


class HistoryMessage(BaseModel):
    type: Literal["history"] = "history"
    messages: List[HistoryEntry] = Field(default_factory=list)


class SystemMessage(BaseModel):
    type: Literal["system-message"] = "system-message"
    text: str
    timestamp: int = Field(default_factory=now_ms)


class ChatMessage(BaseModel):
    type: Literal["chat-message"] = "chat-message"
    username: str
    color: str
    text: str
    timestamp: int


class UserListMessage(BaseModel):
    type: Literal["user-list"] = "user-list"
    users: List[UserInfo] = Field(default_factory=list)
    total: int = 0


class CursorMessage(BaseModel):
    type: Literal["cursor"] = "cursor"
    id: str
    username: str
    color: str
    x: float
    y: float


class CursorGoneMessage(BaseModel):
    type: Literal["cursor-gone"] = "cursor-gone"
    id: str
