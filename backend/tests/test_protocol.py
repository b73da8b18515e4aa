"""Tests for envelope parsing and serialization."""
import pytest

from app.chat.protocol import (
    ChatEntry,
    ChatEnvelope,
    CursorEnvelope,
    HistoryMessage,
    JoinEnvelope,
    SetColorEnvelope,
    SystemEntry,
    SystemMessage,
    UserInfo,
    UserListMessage,
    load_history,
    parse_inbound,
)


class TestParseInbound:

    def test_parses_join_from_text(self):
        envelope = parse_inbound('{"type": "join", "username": "neko", "color": "#ff00ff"}')
        assert isinstance(envelope, JoinEnvelope)
        assert envelope.username == "neko"
        assert envelope.color == "#ff00ff"
        assert envelope.externalId is None

    def test_join_wallet_alias(self):
        envelope = parse_inbound({"type": "join", "username": "neko", "wallet": "0xabc"})
        assert envelope.externalId == "0xabc"

    def test_join_blank_color_means_not_supplied(self):
        envelope = parse_inbound({"type": "join", "username": "neko", "color": ""})
        assert envelope.color is None

    def test_parses_chat(self):
        envelope = parse_inbound({"type": "chat", "text": "hi"})
        assert isinstance(envelope, ChatEnvelope)
        assert envelope.text == "hi"

    def test_parses_set_color(self):
        envelope = parse_inbound({"type": "set-color", "color": "#00ff00"})
        assert isinstance(envelope, SetColorEnvelope)

    def test_parses_cursor_with_int_coordinates(self):
        envelope = parse_inbound({"type": "cursor", "x": 50, "y": 25.5})
        assert isinstance(envelope, CursorEnvelope)
        assert (envelope.x, envelope.y) == (50.0, 25.5)

    def test_extra_fields_are_ignored(self):
        envelope = parse_inbound({"type": "chat", "text": "hi", "extra": True})
        assert isinstance(envelope, ChatEnvelope)

    @pytest.mark.parametrize("raw", [
        "",
        "{",
        "42",
        '"join"',
        {"type": "unknown"},
        {"type": "set-color"},
        {"type": "set-color", "color": ""},
        {"type": "cursor", "x": 1},
        {"type": "chat", "text": ["a"]},
        {},
        pytest.param("[" * 100000, id="deeply-nested-array"),
    ])
    def test_malformed_returns_none(self, raw):
        assert parse_inbound(raw) is None


class TestSerialization:

    def test_history_entries_carry_msg_type(self):
        message = HistoryMessage(messages=[
            SystemEntry(text="hello", timestamp=1),
            ChatEntry(username="neko", color="#fff", text="hi", timestamp=2),
        ])
        assert message.model_dump(mode="json") == {
            "type": "history",
            "messages": [
                {"msgType": "system", "text": "hello", "timestamp": 1},
                {"msgType": "chat", "username": "neko", "color": "#fff", "text": "hi", "timestamp": 2},
            ],
        }

    def test_system_message_gets_timestamp(self):
        payload = SystemMessage(text="note").model_dump(mode="json")
        assert payload["type"] == "system-message"
        assert isinstance(payload["timestamp"], int)

    def test_user_list_shape(self):
        payload = UserListMessage(users=[UserInfo(username="neko", color="#fff")], total=3)
        assert payload.model_dump(mode="json") == {
            "type": "user-list",
            "users": [{"username": "neko", "color": "#fff"}],
            "total": 3,
        }


class TestLoadHistory:

    def test_round_trips_stored_entries(self):
        stored = [
            {"msgType": "system", "text": "hello", "timestamp": 1},
            {"msgType": "chat", "username": "neko", "color": "#fff", "text": "hi", "timestamp": 2},
        ]
        entries = load_history(stored)
        assert [type(e) for e in entries] == [SystemEntry, ChatEntry]

    def test_skips_unreadable_entries(self):
        stored = [
            {"msgType": "system", "text": "ok", "timestamp": 1},
            {"msgType": "bogus"},
            {"msgType": "chat", "text": "missing user"},
        ]
        entries = load_history(stored)
        assert [e.text for e in entries] == ["ok"]

    def test_non_list_is_empty(self):
        assert load_history(None) == []
        assert load_history({"msgType": "system"}) == []
