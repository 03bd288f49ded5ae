"""
Shared test fixtures for the transcription relay.

Provides:
- Store / bus fixtures backed by FakeRedis and the in-memory bus
- Sessions whose REST calls go to an httpx MockTransport
- Mock dashboard WebSockets that record sent messages
"""

from typing import List, Dict, Any
from unittest.mock import AsyncMock

import httpx
import pytest

from relay.config import RetentionConfig
from relay.events.bus import InMemoryEventBus, Subscription
from relay.storage.retention import RetentionStore
from relay.transcription.session import TranscriptionSession, GladiaConfig

from relay.tests.fakes import FakeRedis, FakeProviderSocket


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def retention() -> RetentionConfig:
    return RetentionConfig()


@pytest.fixture
def store(fake_redis, retention) -> RetentionStore:
    return RetentionStore(client=fake_redis, retention=retention)


@pytest.fixture
def bus() -> InMemoryEventBus:
    return InMemoryEventBus()


@pytest.fixture
def published_events(bus):
    """Collects everything published on the in-memory bus."""
    events = []

    async def collect(event):
        events.append(event)

    bus._subscriptions.append(Subscription(bus=bus, handler=collect))
    return events


@pytest.fixture
def provider_socket() -> FakeProviderSocket:
    return FakeProviderSocket()


@pytest.fixture
def gladia_handler():
    """Default Gladia REST behaviour: a valid live session."""
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={"id": "sess-123", "url": "wss://api.gladia.io/v2/live?token=abc"})

    handler.calls = calls
    return handler


@pytest.fixture
def make_session(store, bus, gladia_handler):
    """Factory for sessions whose REST calls go to an httpx MockTransport."""
    def factory(handler=None, api_key: str = "test-key") -> TranscriptionSession:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler or gladia_handler))
        return TranscriptionSession(
            store,
            bus,
            api_key=api_key,
            config=GladiaConfig(api_url="https://api.gladia.io"),
            client=client,
        )
    return factory


@pytest.fixture
def mock_websocket():
    """Create a mock dashboard WebSocket that records sent messages."""
    ws = AsyncMock()
    ws.sent_messages: List[Dict[str, Any]] = []

    async def record_send(data: dict):
        ws.sent_messages.append(data)

    ws.send_json = AsyncMock(side_effect=record_send)
    return ws


@pytest.fixture
def make_websocket():
    """Factory for several independent mock WebSockets."""
    def factory(fail: bool = False):
        ws = AsyncMock()
        ws.sent_messages = []

        async def record_send(data: dict):
            if fail:
                raise RuntimeError("Cannot call send once a close message has been sent")
            ws.sent_messages.append(data)

        ws.send_json = AsyncMock(side_effect=record_send)
        return ws
    return factory
