"""Transcript data models shared across the relay."""

from .models import (
    TranscriptSegment,
    TranscriptEvent,
    MeetingRecord,
    MeetingStatus,
    SessionState,
    ProviderMessageType,
    WSMessageType,
)

__all__ = [
    "TranscriptSegment",
    "TranscriptEvent",
    "MeetingRecord",
    "MeetingStatus",
    "SessionState",
    "ProviderMessageType",
    "WSMessageType",
]
