"""HTTP query API over stored transcripts."""
from .transcripts import router as transcripts_router
from .models import TranscriptResponse, SuccessResponse, BotCreate, BotResponse

__all__ = [
    "transcripts_router",
    "TranscriptResponse",
    "SuccessResponse",
    "BotCreate",
    "BotResponse",
]
