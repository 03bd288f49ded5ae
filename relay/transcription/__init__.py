"""Streaming transcription sessions against the Gladia live API."""

from .session import TranscriptionSession, GladiaConfig

__all__ = [
    "TranscriptionSession",
    "GladiaConfig",
]
