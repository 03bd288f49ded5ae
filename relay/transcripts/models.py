"""
Transcript Relay Data Models

Defines the data structures shared by the store, the event bus,
the transcription session and the broadcast gateway.
"""

import time
from dataclasses import dataclass, field
from typing import Optional, Dict, Any
from enum import Enum


def now_ms() -> int:
    """Wall-clock time in integer milliseconds since the epoch."""
    return int(time.time() * 1000)


def make_id(meeting_id: str, timestamp_ms: int) -> str:
    return f"{meeting_id}:{timestamp_ms}"


def split_id(composite_id: str) -> Optional[tuple[str, int]]:
    """
    Split a composite "<meeting_id>:<timestamp_ms>" identifier.

    Meeting ids are usually URLs and contain colons themselves, so only
    the last colon separates the timestamp.

    Returns:
        (meeting_id, timestamp_ms) or None if the id is malformed
    """
    meeting_id, sep, timestamp = composite_id.rpartition(":")
    if not sep or not meeting_id:
        return None
    try:
        return meeting_id, int(timestamp)
    except ValueError:
        return None


class MeetingStatus(str, Enum):
    """Retention status of a meeting."""
    ACTIVE = "active"
    COMPLETED = "completed"


class SessionState(str, Enum):
    """Connection state of a transcription session."""
    UNINITIALIZED = "uninitialized"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    CLOSED = "closed"


@dataclass(frozen=True)
class TranscriptSegment:
    """A finalized utterance stored for a meeting."""
    meeting_id: str
    text: str
    start_time: float = 0.0
    end_time: float = 0.0
    produced_at: int = field(default_factory=now_ms)
    final: bool = True

    @property
    def id(self) -> str:
        return make_id(self.meeting_id, self.produced_at)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "meeting_id": self.meeting_id,
            "text": self.text,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "produced_at": self.produced_at,
            "final": self.final,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TranscriptSegment":
        return cls(
            meeting_id=str(data["meeting_id"]),
            text=str(data["text"]),
            start_time=float(data.get("start_time") or 0.0),
            end_time=float(data.get("end_time") or 0.0),
            produced_at=int(data["produced_at"]),
            final=bool(data.get("final", True)),
        )


@dataclass
class MeetingRecord:
    """Per-meeting retention metadata."""
    meeting_id: str
    status: MeetingStatus = MeetingStatus.ACTIVE
    last_updated_at: int = field(default_factory=now_ms)
    completed_at: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "meeting_id": self.meeting_id,
            "status": self.status.value,
            "last_updated_at": self.last_updated_at,
            "completed_at": self.completed_at,
        }

    @classmethod
    def from_hash(cls, meeting_id: str, data: Dict[str, str]) -> "MeetingRecord":
        completed_at = data.get("completed_at")
        return cls(
            meeting_id=meeting_id,
            status=MeetingStatus(data.get("status", MeetingStatus.ACTIVE.value)),
            last_updated_at=int(data.get("last_updated_at") or 0),
            completed_at=int(completed_at) if completed_at else None,
        )


@dataclass(frozen=True)
class TranscriptEvent:
    """A partial or final transcript travelling over the event bus."""
    meeting_id: str
    text: str
    final: bool
    emitted_at: int = field(default_factory=now_ms)

    @property
    def id(self) -> str:
        return make_id(self.meeting_id, self.emitted_at)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "meeting_id": self.meeting_id,
            "text": self.text,
            "final": self.final,
            "emitted_at": self.emitted_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TranscriptEvent":
        return cls(
            meeting_id=str(data["meeting_id"]),
            text=str(data["text"]),
            final=bool(data["final"]),
            emitted_at=int(data["emitted_at"]),
        )


# Provider WebSocket message types
class ProviderMessageType(Enum):
    """Message tags on the provider streaming connection."""
    # Relay → Provider
    AUDIO_CHUNK = "audio_chunk"
    STOP_RECORDING = "stop_recording"

    # Provider → Relay
    TRANSCRIPT = "transcript"


# Gateway WebSocket message types
class WSMessageType(Enum):
    """WebSocket message types for dashboard and bot clients."""
    # Client → Server
    REGISTER = "register"
    AUDIO_CHUNK = "audio_chunk"
    PING = "ping"

    # Server → Client
    CONNECTED = "connected"
    TRANSCRIPT = "transcript"
    STATUS = "status"
    PONG = "pong"
    ERROR = "error"
