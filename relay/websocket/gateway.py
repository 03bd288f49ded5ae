"""
Broadcast Gateway

Pushes every transcript event (partial and final) to every connected
dashboard client. Driven by the event bus, so it works whether the
transcription sessions run in this process or another one.

Protocol:
    Client → Server:
    - {"type": "ping"}  keep-alive

    Server → Client:
    - {"type": "connected", "topic": "transcripts", ...}
    - {"type": "transcript", "data": {id, meeting_id, text, final, emitted_at}}
    - {"type": "pong"}
"""

import logging
from typing import Optional

from fastapi import WebSocket

from relay.events.bus import EventBus, Subscription
from relay.transcripts.models import TranscriptEvent, WSMessageType

from .manager import ConnectionManager, ConnectionInfo, WebSocketHandler

logger = logging.getLogger(__name__)

TRANSCRIPTS_TOPIC = "transcripts"


class BroadcastGateway(WebSocketHandler):
    """Fan-out of transcript events to dashboard WebSocket clients."""

    def __init__(self, bus: EventBus, manager: Optional[ConnectionManager] = None):
        super().__init__(manager or ConnectionManager())
        self.bus = bus
        self._subscription: Optional[Subscription] = None

    async def start(self):
        """Subscribe to the event bus."""
        if self._subscription is None:
            self._subscription = await self.bus.subscribe(self.broadcast)
            logger.info("Broadcast gateway subscribed to transcript events")

    async def stop(self):
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    async def serve(self, websocket: WebSocket):
        """Run one dashboard connection until it closes."""
        await self.handle_connection(websocket, TRANSCRIPTS_TOPIC, {"subscriber": True})

    async def handle_message(
        self,
        websocket: WebSocket,
        data: dict,
        conn_info: ConnectionInfo
    ):
        """Dashboards only send keep-alives; anything else is ignored."""
        if data.get("type") == WSMessageType.PING.value:
            await super().handle_message(websocket, data, conn_info)
        else:
            logger.debug(f"Ignoring dashboard message type: {data.get('type')}")

    async def broadcast(self, event: TranscriptEvent) -> int:
        """
        Send a transcript event to every connected client.

        Returns:
            Number of clients that received it
        """
        message = {
            "type": WSMessageType.TRANSCRIPT.value,
            "data": event.to_dict(),
        }
        count = await self.manager.broadcast(TRANSCRIPTS_TOPIC, message)
        if count > 0:
            logger.debug(f"Broadcast transcript {event.id} to {count} clients")
        return count

    def get_connection_count(self) -> int:
        """Number of currently connected dashboard clients."""
        return self.manager.get_connection_count(TRANSCRIPTS_TOPIC)
