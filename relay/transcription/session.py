"""
Transcription Session - Gladia live API integration.

Handles:
- Session creation over REST (fixed 16-bit / 16 kHz / mono PCM)
- Outbound audio streaming over the provider WebSocket
- Inbound partial/final transcripts: finals are stored, both are published
- Explicit state machine: uninitialized -> connecting -> streaming -> closed
"""

import asyncio
import base64
import inspect
import json
import logging
from dataclasses import dataclass, field
from typing import Optional, List, Callable, Union, Any, Awaitable

import httpx
import websockets
from websockets.protocol import State

from relay.config import get_config
from relay.events.bus import EventBus
from relay.storage.retention import RetentionStore
from relay.transcripts.models import (
    TranscriptEvent,
    SessionState,
    ProviderMessageType,
)

logger = logging.getLogger(__name__)

TranscriptionCallback = Callable[[str, bool], Union[None, Awaitable[None]]]


@dataclass
class GladiaConfig:
    """Configuration for Gladia live sessions."""
    api_url: str = "https://api.gladia.io"
    model: str = "accurate"
    languages: List[str] = field(default_factory=lambda: ["en"])
    code_switching: bool = False
    encoding: str = "wav/pcm"
    bit_depth: int = 16
    sample_rate: int = 16000
    channels: int = 1
    request_timeout: float = 30.0

    def session_payload(self) -> dict:
        return {
            "encoding": self.encoding,
            "bit_depth": self.bit_depth,
            "sample_rate": self.sample_rate,
            "channels": self.channels,
            "model": self.model,
            "language_config": {
                "languages": self.languages,
                "code_switching": self.code_switching,
            },
            "messages_config": {
                "receive_partial_transcripts": True,
                "receive_final_transcripts": True,
            },
        }


class TranscriptionSession:
    """
    One bot's streaming connection to Gladia.

    Usage:
        session = TranscriptionSession(store, bus)
        session.set_meeting_url(meeting_url)
        if await session.init_session():
            await session.send_audio_chunk(pcm_bytes)
        await session.end_session()
    """

    def __init__(
        self,
        store: RetentionStore,
        bus: EventBus,
        api_key: Optional[str] = None,
        config: Optional[GladiaConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        settings = get_config()
        self.config = config or GladiaConfig(
            api_url=settings.gladia_api_url,
            model=settings.gladia_model,
            languages=list(settings.languages),
        )
        self.api_key = api_key if api_key is not None else settings.gladia_api_key
        if not self.api_key:
            logger.error("Gladia API key not found. Please set GLADIA_API_KEY in .env")

        self.store = store
        self.bus = bus

        self.session_id: Optional[str] = None
        self.stream_url: Optional[str] = None
        self.meeting_id: Optional[str] = None

        self._state = SessionState.UNINITIALIZED
        self._client = client
        self._ws: Optional[Any] = None
        self._receive_task: Optional[asyncio.Task] = None
        self._on_transcription: Optional[TranscriptionCallback] = None
        # Bumped by every init_session() and end_session(); stale connects check it
        self._attempt = 0

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._ws is not None and self._ws.state is State.OPEN

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.request_timeout)
        return self._client

    def set_meeting_url(self, meeting_id: str) -> bool:
        """
        Bind the meeting transcripts are stored under.

        A session is bound once; rebinding to another meeting is refused.

        Returns:
            True if the session is bound to meeting_id
        """
        if self.meeting_id and self.meeting_id != meeting_id:
            logger.warning(
                f"Session already bound to {self.meeting_id}, refusing {meeting_id}"
            )
            return False
        self.meeting_id = meeting_id
        logger.info(f"Meeting URL set to: {meeting_id}")
        return True

    def on_transcription(self, callback: TranscriptionCallback):
        """Set the callback invoked for each final transcript."""
        self._on_transcription = callback

    async def init_session(self) -> bool:
        """
        Create a Gladia live session and open its streaming connection.

        Returns:
            True once the session is streaming
        """
        if self._state in (SessionState.CONNECTING, SessionState.STREAMING):
            logger.info(f"Gladia session already {self._state.value}: {self.session_id}")
            return True

        if not self.api_key:
            logger.error("Cannot start Gladia session without an API key")
            return False

        self._state = SessionState.CONNECTING
        self._attempt += 1
        attempt = self._attempt
        ws = None

        # Failed, cancelled or superseded attempts never stay CONNECTING or keep a stream
        try:
            try:
                client = await self._get_client()
                response = await client.post(
                    f"{self.config.api_url}/v2/live",
                    json=self.config.session_payload(),
                    headers={"x-gladia-key": self.api_key},
                )
                response.raise_for_status()
                data = response.json()

            except httpx.HTTPStatusError as e:
                logger.error(
                    f"Gladia API error: {e.response.status_code} - {e.response.text}"
                )
                return False

            except (httpx.RequestError, ValueError) as e:
                logger.error(f"Failed to initialize Gladia session: {e}")
                return False

            if self._superseded(attempt):
                logger.info("Gladia session ended while connecting")
                return False

            session_id = data.get("id") if isinstance(data, dict) else None
            stream_url = data.get("url") if isinstance(data, dict) else None
            if not session_id or not stream_url:
                logger.error(f"Malformed Gladia session response: {data}")
                return False

            try:
                ws = await websockets.connect(stream_url)
            except (OSError, asyncio.TimeoutError, websockets.WebSocketException) as e:
                logger.error(f"Failed to connect to Gladia WebSocket: {e}")
                return False

            if self._superseded(attempt):
                logger.info(f"Gladia session {session_id} ended while connecting, discarding stream")
                return False

            self.session_id = session_id
            self.stream_url = stream_url
            self._ws = ws
            self._state = SessionState.STREAMING
            self._receive_task = asyncio.create_task(self._receive_loop(ws))

        finally:
            if ws is not None and self._ws is not ws:
                await self._discard(ws)
            if not self._superseded(attempt) and self._state == SessionState.CONNECTING:
                self._state = SessionState.UNINITIALIZED

        logger.info(f"Gladia session initialized: {session_id}")
        if not self.meeting_id:
            logger.warning("Streaming without a meeting URL - transcripts will not be stored")
        return True

    def _superseded(self, attempt: int) -> bool:
        """True once end_session() or a newer init_session() took over this attempt."""
        return attempt != self._attempt

    async def _discard(self, ws):
        try:
            await ws.close()
        except (OSError, websockets.WebSocketException) as e:
            logger.warning(f"Error closing discarded Gladia WebSocket: {e}")

    async def send_audio_chunk(self, audio: bytes) -> bool:
        """
        Forward raw PCM audio to Gladia.

        Returns:
            False if the connection is not open or the send failed
        """
        if not self.is_open:
            logger.warning("WebSocket not connected, ignoring audio chunk")
            return False

        message = {
            "type": ProviderMessageType.AUDIO_CHUNK.value,
            "data": {"chunk": base64.b64encode(audio).decode("ascii")},
        }
        try:
            await self._ws.send(json.dumps(message))
            return True
        except (OSError, websockets.WebSocketException) as e:
            logger.error(f"Error sending audio chunk to Gladia: {e}")
            return False

    async def handle_message(self, raw: Union[str, bytes]):
        """Interpret one inbound provider message. Bad input is logged and dropped."""
        try:
            message = json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.error(f"Error parsing Gladia message: {e}")
            return

        if not isinstance(message, dict):
            logger.warning(f"Unexpected Gladia message: {message!r}")
            return

        if message.get("type") != ProviderMessageType.TRANSCRIPT.value:
            logger.debug(f"Ignoring Gladia message type: {message.get('type')}")
            return

        data = message.get("data")
        utterance = data.get("utterance") if isinstance(data, dict) else None
        if not isinstance(utterance, dict):
            logger.warning("Gladia transcript without utterance")
            return

        text = str(utterance.get("text") or "").strip()
        if not text:
            logger.debug("Dropping empty transcript")
            return

        is_final = bool(data.get("is_final"))

        if not self.meeting_id:
            logger.warning("No meeting URL set, skipping transcript")
            return

        if is_final:
            try:
                start_time = float(utterance.get("start", utterance.get("start_time")) or 0.0)
                end_time = float(utterance.get("end", utterance.get("end_time")) or 0.0)
            except (TypeError, ValueError):
                logger.warning(f"Invalid utterance timing: {utterance}")
                return

            logger.info(f"Transcription (final): {text}")
            stored = await self.store.append(self.meeting_id, text, start_time, end_time)
            if not stored:
                logger.error("Failed to store transcript in Redis")

        await self.bus.publish(TranscriptEvent(
            meeting_id=self.meeting_id,
            text=text,
            final=is_final,
        ))

        if is_final and self._on_transcription:
            await self._notify(text)

    async def _notify(self, text: str):
        try:
            result = self._on_transcription(text, True)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Transcription callback failed: {e}")

    async def _receive_loop(self, ws):
        """Process provider messages in arrival order until the stream closes."""
        try:
            async for raw in ws:
                try:
                    await self.handle_message(raw)
                except Exception as e:
                    logger.error(f"Error handling Gladia message: {e}")
        except websockets.ConnectionClosed as e:
            logger.info(f"Gladia WebSocket closed: {e}")
        finally:
            if self._ws is ws:
                # Provider hung up without end_session()
                logger.info("Gladia WebSocket connection closed")
                self._ws = None
                self._receive_task = None
                self._clear()
                self._state = SessionState.CLOSED

    async def end_session(self):
        """Stop streaming and close the session. Safe to call repeatedly."""
        self._attempt += 1
        ws, self._ws = self._ws, None
        task, self._receive_task = self._receive_task, None

        if ws is not None:
            if ws.state is State.OPEN:
                try:
                    await ws.send(json.dumps({"type": ProviderMessageType.STOP_RECORDING.value}))
                except (OSError, websockets.WebSocketException) as e:
                    logger.warning(f"Failed to send stop_recording: {e}")
            try:
                await ws.close()
            except (OSError, websockets.WebSocketException) as e:
                logger.warning(f"Error closing Gladia WebSocket: {e}")

        if task is not None and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        if self._state != SessionState.UNINITIALIZED:
            self._state = SessionState.CLOSED
            logger.info(f"Gladia session ended: {self.session_id}")
        self._clear()

    def _clear(self):
        self.session_id = None
        self.stream_url = None
        self.meeting_id = None

    async def close(self):
        """End the session and release the HTTP client."""
        await self.end_session()
        if self._client:
            await self._client.aclose()
            self._client = None
