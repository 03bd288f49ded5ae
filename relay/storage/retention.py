"""
RetentionStore: Redis-backed transcript storage with tiered TTLs.

Each meeting owns two keys:
- transcripts:<meeting_id>  list of JSON-encoded segments, oldest first
- meeting:<meeting_id>      hash with status / last_updated_at / completed_at

Backend errors never escape this class unless the caller asks for
strict mode; they are logged and reported as False / [] / None.
"""

import asyncio
import json
import logging
from typing import Optional, List

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from relay.config import RetentionConfig
from relay.transcripts.models import (
    TranscriptSegment,
    MeetingRecord,
    MeetingStatus,
    now_ms,
    split_id,
)

logger = logging.getLogger(__name__)

BACKEND_ERRORS = (RedisError, OSError, asyncio.TimeoutError)


class StorageUnavailableError(Exception):
    """Raised by strict reads when the storage backend cannot be reached."""


class RetentionStore:
    """
    Append-only transcript log per meeting.

    Features:
    - Atomic append (RPUSH inside MULTI/EXEC), safe for concurrent producers
    - Active-window TTL refreshed on every append
    - Completed-window TTL that never drops below the retention floor
    - Lookup by composite "<meeting_id>:<produced_at>" id
    """

    def __init__(
        self,
        client: Optional[aioredis.Redis] = None,
        redis_url: str = "redis://localhost:6379",
        retention: Optional[RetentionConfig] = None,
    ):
        self._redis = client if client is not None else aioredis.from_url(
            redis_url, decode_responses=True
        )
        self.retention = retention or RetentionConfig()

    @staticmethod
    def transcripts_key(meeting_id: str) -> str:
        return f"transcripts:{meeting_id}"

    @staticmethod
    def meeting_key(meeting_id: str) -> str:
        return f"meeting:{meeting_id}"

    async def append(
        self,
        meeting_id: str,
        text: str,
        start_time: float,
        end_time: float,
    ) -> bool:
        """
        Store a final transcript segment and mark the meeting active.

        Args:
            meeting_id: Meeting the segment belongs to
            text: Recognized utterance
            start_time: Provider start offset in seconds
            end_time: Provider end offset in seconds

        Returns:
            True if the segment was persisted
        """
        segment = TranscriptSegment(
            meeting_id=meeting_id,
            text=text,
            start_time=float(start_time or 0.0),
            end_time=float(end_time or 0.0),
        )
        transcripts_key = self.transcripts_key(meeting_id)
        meeting_key = self.meeting_key(meeting_id)
        ttl = self.retention.active_ttl

        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.rpush(transcripts_key, json.dumps(segment.to_dict()))
                pipe.hset(meeting_key, mapping={
                    "status": MeetingStatus.ACTIVE.value,
                    "last_updated_at": segment.produced_at,
                })
                pipe.expire(transcripts_key, ttl)
                pipe.expire(meeting_key, ttl)
                await pipe.execute()
        except BACKEND_ERRORS as e:
            logger.error(f"Error storing transcript for {meeting_id}: {e}")
            return False

        logger.debug(f"Stored segment {segment.id}: {text[:50]}")
        return True

    async def list_by_meeting(
        self,
        meeting_id: str,
        strict: bool = False,
    ) -> List[TranscriptSegment]:
        """
        Get all retained segments for a meeting in the order they were stored.

        Args:
            meeting_id: Meeting to read
            strict: Raise StorageUnavailableError instead of returning []

        Returns:
            List of segments, empty if none or expired
        """
        try:
            raw_entries = await self._redis.lrange(self.transcripts_key(meeting_id), 0, -1)
        except BACKEND_ERRORS as e:
            logger.error(f"Error getting transcripts for {meeting_id}: {e}")
            if strict:
                raise StorageUnavailableError(str(e)) from e
            return []

        segments = []
        for raw in raw_entries:
            try:
                segments.append(TranscriptSegment.from_dict(json.loads(raw)))
            except (ValueError, KeyError, TypeError) as e:
                logger.warning(f"Skipping undecodable segment for {meeting_id}: {e}")
        return segments

    async def find_by_id(
        self,
        composite_id: str,
        strict: bool = False,
    ) -> Optional[TranscriptSegment]:
        """
        Resolve a segment by "<meeting_id>:<produced_at>".

        Returns:
            The segment, or None if it does not exist
        """
        parts = split_id(composite_id)
        if parts is None:
            logger.debug(f"Malformed transcript id: {composite_id}")
            return None

        meeting_id, produced_at = parts
        for segment in await self.list_by_meeting(meeting_id, strict=strict):
            if segment.produced_at == produced_at:
                return segment
        return None

    async def get_meeting(self, meeting_id: str) -> Optional[MeetingRecord]:
        """Read a meeting's retention metadata."""
        try:
            data = await self._redis.hgetall(self.meeting_key(meeting_id))
        except BACKEND_ERRORS as e:
            logger.error(f"Error reading meeting {meeting_id}: {e}")
            return None

        if not data:
            return None
        try:
            return MeetingRecord.from_hash(meeting_id, data)
        except ValueError as e:
            logger.warning(f"Corrupt meeting metadata for {meeting_id}: {e}")
            return None

    async def mark_completed(self, meeting_id: str) -> bool:
        """
        Mark a meeting completed and switch it to the completed retention window.

        The new TTL is the largest of the completed window, the retention
        floor and whatever retention the keys already have left.

        Returns:
            True if the status and TTLs were updated; False if the meeting
            has no stored data or the backend failed
        """
        transcripts_key = self.transcripts_key(meeting_id)
        meeting_key = self.meeting_key(meeting_id)
        completed_at = now_ms()

        try:
            remaining = max(
                await self._redis.ttl(transcripts_key),
                await self._redis.ttl(meeting_key),
            )
            if remaining == -2:
                # TTL -2 on both keys means neither exists
                logger.info(f"No stored data for meeting {meeting_id}, nothing to complete")
                return False

            ttl = max(
                self.retention.completed_ttl,
                self.retention.min_retention_ttl,
                remaining,
            )

            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.hset(meeting_key, mapping={
                    "status": MeetingStatus.COMPLETED.value,
                    "completed_at": completed_at,
                    "last_updated_at": completed_at,
                })
                pipe.expire(transcripts_key, ttl)
                pipe.expire(meeting_key, ttl)
                await pipe.execute()
        except BACKEND_ERRORS as e:
            logger.error(f"Error completing meeting {meeting_id}: {e}")
            return False

        logger.info(f"Meeting completed: {meeting_id} (retained for {ttl}s)")
        return True

    async def delete_meeting(self, meeting_id: str, strict: bool = False) -> bool:
        """
        Remove all stored data for a meeting. Deleting an absent meeting is fine.

        Returns:
            True if the delete reached the backend
        """
        try:
            await self._redis.delete(
                self.transcripts_key(meeting_id),
                self.meeting_key(meeting_id),
            )
        except BACKEND_ERRORS as e:
            logger.error(f"Error deleting meeting data for {meeting_id}: {e}")
            if strict:
                raise StorageUnavailableError(str(e)) from e
            return False

        logger.info(f"Deleted meeting data: {meeting_id}")
        return True

    async def ping(self) -> bool:
        """Check whether the backend is reachable."""
        try:
            return bool(await self._redis.ping())
        except BACKEND_ERRORS:
            return False

    async def close(self):
        """Release the Redis connection pool."""
        try:
            await self._redis.aclose()
        except BACKEND_ERRORS as e:
            logger.warning(f"Error closing Redis client: {e}")
