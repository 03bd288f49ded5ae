"""
Bot audio ingress.

Each meeting bot connects to /ws/bot, registers its meeting URL, and then
streams raw PCM audio. The handler owns one TranscriptionSession per bot
connection.

Protocol:
    Bot → Server:
    - {"type": "register", "meetingUrl": "..."}    bind meeting, open Gladia session
    - <binary frame>                                raw 16 kHz mono PCM
    - {"type": "audio_chunk", "data": {"chunk": "<base64>"}}
    - {"type": "ping"}

    Server → Bot:
    - {"type": "status", "status": "registered", "session_id": "..."}
    - {"type": "error", "message": "..."}
"""

import base64
import binascii
import logging
from typing import Callable, Optional

from fastapi import WebSocket

from relay.events.bus import EventBus
from relay.storage.retention import RetentionStore
from relay.transcription.session import TranscriptionSession
from relay.transcripts.models import SessionState, WSMessageType
from relay.websocket.manager import ConnectionManager, ConnectionInfo, WebSocketHandler

logger = logging.getLogger(__name__)

BOTS_TOPIC = "bots"

SessionFactory = Callable[[], TranscriptionSession]


class BotIngressHandler(WebSocketHandler):
    """WebSocket handler feeding bot audio into transcription sessions."""

    def __init__(
        self,
        manager: ConnectionManager,
        store: RetentionStore,
        bus: EventBus,
        session_factory: Optional[SessionFactory] = None,
    ):
        super().__init__(manager)
        self.store = store
        self.bus = bus
        self.session_factory = session_factory or (lambda: TranscriptionSession(store, bus))

    async def serve(self, websocket: WebSocket):
        """Run one bot connection until it closes."""
        await self.handle_connection(websocket, BOTS_TOPIC, {"client": "bot"})

    async def handle_message(
        self,
        websocket: WebSocket,
        data: dict,
        conn_info: ConnectionInfo
    ):
        msg_type = data.get("type", "")

        if msg_type == WSMessageType.REGISTER.value:
            await self._handle_register(websocket, data, conn_info)

        elif msg_type == WSMessageType.AUDIO_CHUNK.value:
            payload = data.get("data") or {}
            try:
                audio = base64.b64decode(payload.get("chunk", ""), validate=True)
            except (binascii.Error, ValueError, AttributeError) as e:
                await self._send_error(websocket, f"Invalid audio data: {e}")
                return
            await self.handle_bytes(websocket, audio, conn_info)

        else:
            await super().handle_message(websocket, data, conn_info)

    async def _handle_register(
        self,
        websocket: WebSocket,
        data: dict,
        conn_info: ConnectionInfo
    ):
        meeting_url = data.get("meetingUrl") or data.get("meeting_url")
        if not meeting_url:
            await self._send_error(websocket, "Missing meetingUrl")
            return

        session: Optional[TranscriptionSession] = conn_info.metadata.get("session")
        if session is None:
            session = self.session_factory()
            conn_info.metadata["session"] = session

        if not session.set_meeting_url(meeting_url):
            await self._send_error(websocket, "Connection already registered to another meeting")
            return
        conn_info.metadata["meeting_url"] = meeting_url

        if not await session.init_session():
            await self._send_error(websocket, "Failed to start transcription session")
            return

        logger.info(f"Bot registered for meeting: {meeting_url}")
        await websocket.send_json({
            "type": WSMessageType.STATUS.value,
            "status": "registered",
            "meeting_url": meeting_url,
            "session_id": session.session_id,
        })

    async def handle_bytes(
        self,
        websocket: WebSocket,
        data: bytes,
        conn_info: ConnectionInfo
    ):
        session: Optional[TranscriptionSession] = conn_info.metadata.get("session")
        if session is None:
            logger.warning("Audio received before register, dropping chunk")
            return

        if await session.send_audio_chunk(data):
            return

        # Provider stream dropped: open a fresh session for the same meeting and retry once
        meeting_url = conn_info.metadata.get("meeting_url")
        if session.state == SessionState.CLOSED and meeting_url:
            logger.info(f"Reconnecting transcription session for {meeting_url}")
            session.set_meeting_url(meeting_url)
            if await session.init_session():
                await session.send_audio_chunk(data)

    async def on_disconnect(self, websocket: WebSocket, conn_info: ConnectionInfo):
        session: Optional[TranscriptionSession] = conn_info.metadata.pop("session", None)
        if session is not None:
            await session.close()

        meeting_url = conn_info.metadata.get("meeting_url")
        if meeting_url:
            if await self.store.mark_completed(meeting_url):
                logger.info(f"Bot disconnected, meeting completed: {meeting_url}")
            else:
                logger.info(f"Bot disconnected, no stored transcripts for: {meeting_url}")
