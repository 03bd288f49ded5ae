"""Publish/subscribe fan-out of transcript events."""

from .bus import (
    EventBus,
    InMemoryEventBus,
    RedisEventBus,
    Subscription,
    TRANSCRIPT_CHANNEL,
)

__all__ = [
    "EventBus",
    "InMemoryEventBus",
    "RedisEventBus",
    "Subscription",
    "TRANSCRIPT_CHANNEL",
]
