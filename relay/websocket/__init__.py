"""WebSocket infrastructure for dashboard and bot connections."""

from .manager import ConnectionManager, ConnectionInfo, WebSocketHandler
from .gateway import BroadcastGateway, TRANSCRIPTS_TOPIC

__all__ = [
    "ConnectionManager",
    "ConnectionInfo",
    "WebSocketHandler",
    "BroadcastGateway",
    "TRANSCRIPTS_TOPIC",
]
