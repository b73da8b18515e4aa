"""Shared test fixtures and configuration for backend tests."""
import random

import pytest
from fastapi.testclient import TestClient

from app.chat.room import Room
from app.config import AppConfig, ChatSettings, StorageSettings
from app.main import create_app
from app.storage import MemoryStore


class FakeOutbox:
    """Collects every payload the room sends to one connection."""

    def __init__(self) -> None:
        self.sent = []

    def send(self, payload: dict) -> bool:
        self.sent.append(payload)
        return True

    def types(self):
        return [p["type"] for p in self.sent]

    def of_type(self, message_type: str):
        return [p for p in self.sent if p["type"] == message_type]

    def clear(self) -> None:
        self.sent.clear()


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def room(store, clock):
    """A started room over an in-memory store with a seeded palette RNG."""
    r = Room(store, settings=ChatSettings(), rng=random.Random(1234), clock=clock)
    r.start()
    return r


@pytest.fixture
def outbox_factory():
    return FakeOutbox


@pytest.fixture
def test_config():
    """Config for HTTP/WebSocket tests: in-memory storage, localhost-only origins."""
    return AppConfig(
        storage=StorageSettings(backend="memory", path=":memory:"),
    )


@pytest.fixture
def api_client(test_config):
    """Provide a TestClient with the lifespan running (room on app.state)."""
    app = create_app(config=test_config, store=MemoryStore())
    with TestClient(app) as client:
        yield client
