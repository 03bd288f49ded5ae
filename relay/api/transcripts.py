"""
Transcript Query API.

Read/delete access to stored transcripts. Meeting URLs are passed
URL-encoded in the path and arrive here already decoded.
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request

from relay.storage.retention import RetentionStore, StorageUnavailableError

from .models import TranscriptResponse, SuccessResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/transcripts", tags=["Transcripts"])


def get_store(request: Request) -> RetentionStore:
    return request.app.state.store


@router.get("/id/{transcript_id:path}", response_model=TranscriptResponse)
async def get_transcript(transcript_id: str, store: RetentionStore = Depends(get_store)):
    """Get a specific transcript by "<meeting_url>:<produced_at>"."""
    try:
        segment = await store.find_by_id(transcript_id, strict=True)
    except StorageUnavailableError as e:
        logger.error(f"Error getting transcript: {e}")
        raise HTTPException(status_code=500, detail="Failed to get transcript")

    if segment is None:
        raise HTTPException(status_code=404, detail="Transcript not found")
    return TranscriptResponse(**segment.to_dict())


@router.get("/{meeting_url:path}", response_model=List[TranscriptResponse])
async def list_transcripts(meeting_url: str, store: RetentionStore = Depends(get_store)):
    """Get all transcripts for a meeting, oldest first."""
    try:
        segments = await store.list_by_meeting(meeting_url, strict=True)
    except StorageUnavailableError as e:
        logger.error(f"Error getting transcripts: {e}")
        raise HTTPException(status_code=500, detail="Failed to get transcripts")

    return [TranscriptResponse(**segment.to_dict()) for segment in segments]


@router.delete("/{meeting_url:path}", response_model=SuccessResponse)
async def delete_transcripts(meeting_url: str, store: RetentionStore = Depends(get_store)):
    """Delete all transcripts for a meeting."""
    try:
        await store.delete_meeting(meeting_url, strict=True)
    except StorageUnavailableError as e:
        logger.error(f"Error deleting transcripts: {e}")
        raise HTTPException(status_code=500, detail="Failed to delete transcripts")

    return SuccessResponse(message="Transcripts deleted successfully")
