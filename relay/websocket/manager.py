"""
WebSocket Connection Manager

Tracks long-lived client connections (dashboards, meeting bots) by topic
and fans messages out to them. A failed send only drops that one client.
"""

import asyncio
import json
import logging
from typing import Dict, Set, Optional, Any
from dataclasses import dataclass, field
from datetime import datetime

from fastapi import WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class ConnectionInfo:
    """Information about a WebSocket connection."""
    websocket: WebSocket
    topic: str
    connected_at: datetime = field(default_factory=datetime.utcnow)
    metadata: Dict[str, Any] = field(default_factory=dict)


class ConnectionManager:
    """
    Manages WebSocket connections across topics.

    Features:
    - Topic-based tracking (e.g., "transcripts", "bot:<meeting>")
    - Concurrent broadcast; one failing client never blocks the rest
    - Safe when a disconnect races with an in-flight broadcast
    """

    def __init__(self):
        # topic -> set of ConnectionInfo
        self._connections: Dict[str, Set[ConnectionInfo]] = {}
        # websocket -> ConnectionInfo for reverse lookup
        self._websocket_map: Dict[WebSocket, ConnectionInfo] = {}
        self._lock = asyncio.Lock()

    async def connect(
        self,
        websocket: WebSocket,
        topic: str,
        metadata: Optional[Dict[str, Any]] = None
    ) -> ConnectionInfo:
        """
        Accept a WebSocket connection and track it under a topic.

        Args:
            websocket: The WebSocket connection
            topic: Topic to track it under
            metadata: Optional metadata about the connection

        Returns:
            ConnectionInfo for the new connection
        """
        await websocket.accept()

        conn_info = ConnectionInfo(
            websocket=websocket,
            topic=topic,
            metadata=metadata or {}
        )

        async with self._lock:
            self._connections.setdefault(topic, set()).add(conn_info)
            self._websocket_map[websocket] = conn_info

        logger.info(f"WebSocket connected to topic: {topic}")
        return conn_info

    async def disconnect(self, websocket: WebSocket) -> Optional[str]:
        """
        Stop tracking a connection. Unknown sockets are ignored.

        Returns:
            The topic the connection was tracked under, or None
        """
        async with self._lock:
            conn_info = self._websocket_map.pop(websocket, None)
            if conn_info is None:
                return None

            topic = conn_info.topic
            connections = self._connections.get(topic)
            if connections is not None:
                connections.discard(conn_info)
                if not connections:
                    del self._connections[topic]

        logger.info(f"WebSocket disconnected from topic: {topic}")
        return topic

    async def send_personal(self, websocket: WebSocket, message: dict) -> bool:
        """
        Send a message to a specific connection.

        Returns:
            True if sent successfully, False otherwise
        """
        try:
            await websocket.send_json(message)
            return True
        except Exception as e:
            logger.error(f"Failed to send personal message: {e}")
            await self.disconnect(websocket)
            return False

    async def broadcast(self, topic: str, message: dict) -> int:
        """
        Send a message to every connection on a topic.

        Args:
            topic: Topic to broadcast to
            message: JSON-serializable message

        Returns:
            Number of connections that received the message
        """
        async with self._lock:
            targets = list(self._connections.get(topic, ()))

        if not targets:
            return 0

        results = await asyncio.gather(
            *(self._send(conn_info, message) for conn_info in targets)
        )

        for conn_info, ok in zip(targets, results):
            if not ok:
                await self.disconnect(conn_info.websocket)

        return sum(1 for ok in results if ok)

    async def _send(self, conn_info: ConnectionInfo, message: dict) -> bool:
        try:
            await conn_info.websocket.send_json(message)
            return True
        except Exception as e:
            logger.warning(f"Broadcast failed for connection on {conn_info.topic}: {e}")
            return False

    def get_connection_count(self, topic: Optional[str] = None) -> int:
        """
        Get the number of tracked connections.

        Args:
            topic: Specific topic, or None for all connections
        """
        if topic:
            return len(self._connections.get(topic, ()))
        return len(self._websocket_map)

    def get_topics(self) -> list[str]:
        """Get list of active topics."""
        return list(self._connections.keys())


class WebSocketHandler:
    """
    Base class for WebSocket endpoints.

    Runs the receive loop for one connection: JSON text frames go to
    handle_message, binary frames to handle_bytes. Subclasses override those
    and on_disconnect.
    """

    def __init__(self, manager: ConnectionManager):
        self.manager = manager

    async def handle_connection(
        self,
        websocket: WebSocket,
        topic: str,
        metadata: Optional[Dict[str, Any]] = None
    ):
        """
        Handle a WebSocket connection lifecycle.

        Args:
            websocket: The WebSocket connection
            topic: Topic to track it under
            metadata: Optional connection metadata
        """
        conn_info = await self.manager.connect(websocket, topic, metadata)

        try:
            await websocket.send_json({
                "type": "connected",
                "topic": topic,
                "timestamp": datetime.utcnow().isoformat()
            })

            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break

                if message.get("bytes") is not None:
                    await self.handle_bytes(websocket, message["bytes"], conn_info)
                elif message.get("text") is not None:
                    try:
                        data = json.loads(message["text"])
                    except ValueError:
                        await self._send_error(websocket, "Invalid JSON")
                        continue
                    if not isinstance(data, dict):
                        await self._send_error(websocket, "Expected a JSON object")
                        continue
                    await self.handle_message(websocket, data, conn_info)

        except WebSocketDisconnect:
            logger.info(f"Client disconnected from {topic}")
        except Exception as e:
            logger.error(f"WebSocket error on {topic}: {e}")
        finally:
            await self.manager.disconnect(websocket)
            await self.on_disconnect(websocket, conn_info)

    async def handle_message(
        self,
        websocket: WebSocket,
        data: dict,
        conn_info: ConnectionInfo
    ):
        """Handle a JSON message. Default: answer pings, reject the rest."""
        if data.get("type") == "ping":
            await websocket.send_json({
                "type": "pong",
                "timestamp": datetime.utcnow().isoformat()
            })
        else:
            await self._send_error(websocket, f"Unknown message type: {data.get('type', '')}")

    async def handle_bytes(
        self,
        websocket: WebSocket,
        data: bytes,
        conn_info: ConnectionInfo
    ):
        """Handle a binary frame. Default: ignore."""
        logger.debug(f"Ignoring {len(data)} binary bytes on {conn_info.topic}")

    async def on_disconnect(self, websocket: WebSocket, conn_info: ConnectionInfo):
        """Called when a connection is closed. Override for cleanup."""

    async def _send_error(self, websocket: WebSocket, message: str):
        try:
            await websocket.send_json({"type": "error", "message": message})
        except Exception as e:
            logger.debug(f"Could not deliver error message: {e}")
