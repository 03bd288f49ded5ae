"""
Tests for the relay HTTP surface: transcript queries, bots and health.

Uses FastAPI's TestClient against an app wired to in-memory fakes.

Run with:
    pytest relay/tests/test_api.py -v
"""

import json
from urllib.parse import quote
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from relay.config import RelayConfig
from relay.events.bus import InMemoryEventBus
from relay.server import create_app
from relay.storage.retention import RetentionStore
from relay.transcripts.models import TranscriptEvent, TranscriptSegment

from relay.tests.fakes import FakeRedis


MEETING = "https://meet.google.com/abc-defg-hij"


def seed(fake: FakeRedis, meeting_id: str, texts, start_ms: int = 1700000000000):
    """Write segments straight into the fake backend with known timestamps."""
    segments = []
    for i, text in enumerate(texts):
        segment = TranscriptSegment(
            meeting_id=meeting_id,
            text=text,
            start_time=float(i),
            end_time=float(i) + 0.9,
            produced_at=start_ms + i,
        )
        fake.lists.setdefault(f"transcripts:{meeting_id}", []).append(json.dumps(segment.to_dict()))
        segments.append(segment)
    return segments


@pytest.fixture
def fake():
    return FakeRedis()


@pytest.fixture
def bots():
    client = MagicMock()
    client.create_bot = AsyncMock(return_value="bot-42")
    client.remove_bot = AsyncMock(return_value=True)
    client.close = AsyncMock()
    return client


@pytest.fixture
def app(fake, bots):
    config = RelayConfig(event_bus="memory", public_webhook_url="https://relay.example.com")
    return create_app(
        config=config,
        store=RetentionStore(client=fake),
        bus=InMemoryEventBus(),
        bots=bots,
    )


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


class TestTranscriptQueries:

    def test_list_by_meeting(self, client, fake):
        seed(fake, "m1", ["first", "second"])

        response = client.get("/api/transcripts/m1")

        assert response.status_code == 200
        body = response.json()
        assert [t["text"] for t in body] == ["first", "second"]
        assert body[0]["id"] == "m1:1700000000000"
        assert body[0]["start_time"] == 0.0

    def test_list_url_encoded_meeting(self, client, fake):
        seed(fake, MEETING, ["from meet"])

        response = client.get(f"/api/transcripts/{quote(MEETING, safe='')}")

        assert response.status_code == 200
        assert [t["meeting_id"] for t in response.json()] == [MEETING]

    def test_meeting_with_literal_percent_is_decoded_once(self, client, fake):
        meeting = "https://meet.example.com/room%41?pwd=a%2Fb"
        segments = seed(fake, meeting, ["percent room"])
        seed(fake, "https://meet.example.com/roomA?pwd=a/b", ["wrong room"])

        listed = client.get(f"/api/transcripts/{quote(meeting, safe='')}")
        found = client.get(f"/api/transcripts/id/{quote(segments[0].id, safe='')}")
        deleted = client.delete(f"/api/transcripts/{quote(meeting, safe='')}")

        assert [t["text"] for t in listed.json()] == ["percent room"]
        assert found.status_code == 200
        assert found.json()["meeting_id"] == meeting
        assert deleted.status_code == 200
        assert f"transcripts:{meeting}" not in fake.lists
        assert "transcripts:https://meet.example.com/roomA?pwd=a/b" in fake.lists

    def test_list_unknown_meeting_is_empty(self, client):
        response = client.get("/api/transcripts/nobody")

        assert response.status_code == 200
        assert response.json() == []

    def test_get_by_id(self, client, fake):
        segments = seed(fake, "m1", ["first", "second"])

        response = client.get(f"/api/transcripts/id/{segments[1].id}")

        assert response.status_code == 200
        assert response.json()["text"] == "second"

    def test_get_by_id_with_url_meeting(self, client, fake):
        (segment,) = seed(fake, MEETING, ["from meet"])

        response = client.get(f"/api/transcripts/id/{quote(segment.id, safe='')}")

        assert response.status_code == 200
        assert response.json()["id"] == segment.id

    @pytest.mark.parametrize("transcript_id", ["m1:1", "m1:notanumber", "no-colon"])
    def test_get_by_id_not_found(self, client, fake, transcript_id):
        seed(fake, "m1", ["first"])

        response = client.get(f"/api/transcripts/id/{transcript_id}")

        assert response.status_code == 404
        assert response.json()["detail"] == "Transcript not found"

    def test_delete_then_list(self, client, fake):
        segments = seed(fake, "m1", ["first"])

        response = client.delete("/api/transcripts/m1")

        assert response.status_code == 200
        assert response.json() == {"message": "Transcripts deleted successfully"}
        assert client.get("/api/transcripts/m1").json() == []
        assert client.get(f"/api/transcripts/id/{segments[0].id}").status_code == 404

    def test_delete_unknown_meeting_succeeds(self, client):
        assert client.delete("/api/transcripts/nobody").status_code == 200

    def test_backend_failure_is_500(self, client, fake):
        fake.fail = True

        assert client.get("/api/transcripts/m1").status_code == 500
        assert client.get("/api/transcripts/id/m1:1").status_code == 500
        assert client.delete("/api/transcripts/m1").status_code == 500


class TestBots:

    def test_create_bot_defaults_webhook(self, client, bots):
        response = client.post("/bots", json={"meeting_url": MEETING})

        assert response.status_code == 200
        assert response.json() == {
            "bot_id": "bot-42",
            "meeting_url": MEETING,
            "webhook_url": "https://relay.example.com/ws/bot",
        }
        bots.create_bot.assert_awaited_once_with(
            MEETING, "Transcription Relay", "https://relay.example.com/ws/bot"
        )

    def test_create_bot_failure_is_502(self, client, bots):
        bots.create_bot.return_value = None

        response = client.post("/bots", json={"meeting_url": MEETING, "bot_name": "Notes"})

        assert response.status_code == 502

    def test_create_bot_requires_meeting_url(self, client):
        assert client.post("/bots", json={"meeting_url": ""}).status_code == 422

    def test_remove_bot(self, client, bots):
        response = client.delete("/bots/bot-42")

        assert response.status_code == 200
        bots.remove_bot.assert_awaited_once_with("bot-42")


class TestHealth:

    def test_healthy(self, client):
        body = client.get("/health").json()

        assert body["status"] == "healthy"
        assert body["storage"] == "available"
        assert body["event_bus"] == "InMemoryEventBus"
        assert body["connected_clients"] == 0

    def test_degraded_when_storage_down(self, client, fake):
        fake.fail = True

        body = client.get("/health").json()

        assert body["status"] == "degraded"
        assert body["storage"] == "unavailable"

    def test_shutdown_releases_clients(self, app, bots):
        with TestClient(app):
            pass

        bots.close.assert_awaited_once()


class TestDashboardSocket:

    def test_dashboard_receives_published_transcript(self, app, client):
        with client.websocket_connect("/ws/transcripts") as ws:
            assert ws.receive_json()["type"] == "connected"

            event = TranscriptEvent(meeting_id="m1", text="live", final=False, emitted_at=1)
            client.portal.call(app.state.bus.publish, event)

            message = ws.receive_json()
            assert message == {"type": "transcript", "data": event.to_dict()}

    def test_dashboard_ping(self, client):
        with client.websocket_connect("/ws/transcripts") as ws:
            ws.receive_json()
            ws.send_json({"type": "ping"})

            assert ws.receive_json()["type"] == "pong"
