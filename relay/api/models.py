"""
Pydantic models for the relay HTTP API.
"""
from typing import Optional
from pydantic import BaseModel, Field


# ============================================================
# Transcript Models
# ============================================================

class TranscriptResponse(BaseModel):
    """A stored transcript segment."""
    id: str
    meeting_id: str
    text: str
    start_time: float
    end_time: float
    produced_at: int
    final: bool = True


class SuccessResponse(BaseModel):
    message: str


# ============================================================
# Bot Models
# ============================================================

class BotCreate(BaseModel):
    """Request to send a bot into a meeting."""
    meeting_url: str = Field(..., min_length=1)
    bot_name: str = "Transcription Relay"
    webhook_url: Optional[str] = None


class BotResponse(BaseModel):
    bot_id: str
    meeting_url: str
    webhook_url: Optional[str] = None
