"""
Transcript Event Bus

Decouples "a transcript was produced" from "who is listening".

- RedisEventBus: Redis pub/sub on a single channel, for running sessions and
  dashboard gateways in separate processes
- InMemoryEventBus: same contract inside one process

Delivery is best-effort and at-most-once. Subscribers that are not
connected when an event is published never see it.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from relay.transcripts.models import TranscriptEvent

logger = logging.getLogger(__name__)

TRANSCRIPT_CHANNEL = "transcripts:stream"

EventHandler = Callable[[TranscriptEvent], Awaitable[None]]


@dataclass(eq=False)
class Subscription:
    """Handle returned by EventBus.subscribe."""
    bus: "EventBus"
    handler: EventHandler

    @property
    def active(self) -> bool:
        return self.bus.is_subscribed(self)

    def unsubscribe(self):
        self.bus.unsubscribe(self)


class EventBus(ABC):
    """Publish/subscribe channel for TranscriptEvents."""

    def __init__(self):
        self._subscriptions: List[Subscription] = []

    @abstractmethod
    async def publish(self, event: TranscriptEvent) -> bool:
        """
        Publish an event to all current subscribers.

        Returns:
            True if the event was handed to the backend
        """

    async def subscribe(self, handler: EventHandler) -> Subscription:
        """
        Register a handler invoked once per published event.

        Args:
            handler: Async callable receiving each TranscriptEvent

        Returns:
            Subscription handle; call unsubscribe() to detach
        """
        subscription = Subscription(bus=self, handler=handler)
        self._subscriptions.append(subscription)
        await self._on_subscribe()
        return subscription

    def unsubscribe(self, subscription: Subscription):
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    def is_subscribed(self, subscription: Subscription) -> bool:
        return subscription in self._subscriptions

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    async def _on_subscribe(self):
        """Hook for backends that start listening lazily."""

    async def _dispatch(self, event: TranscriptEvent):
        """Deliver to every handler; one failing handler never affects the others."""
        for subscription in list(self._subscriptions):
            try:
                await subscription.handler(event)
            except Exception as e:
                logger.error(f"Transcript handler failed for {event.id}: {e}")

    async def close(self):
        self._subscriptions.clear()


class InMemoryEventBus(EventBus):
    """Single-process bus. Handlers run inline, in publish order."""

    async def publish(self, event: TranscriptEvent) -> bool:
        await self._dispatch(event)
        return True


class RedisEventBus(EventBus):
    """
    Redis pub/sub bus.

    One listener task per bus instance feeds all local handlers, so events
    reach them in the order Redis delivers them. Ordering across several
    publishing processes is arrival order.
    """

    def __init__(
        self,
        client: Optional[aioredis.Redis] = None,
        redis_url: str = "redis://localhost:6379",
        channel: str = TRANSCRIPT_CHANNEL,
        reconnect_delay: float = 1.0,
    ):
        super().__init__()
        self._redis = client if client is not None else aioredis.from_url(
            redis_url, decode_responses=True
        )
        self.channel = channel
        self.reconnect_delay = reconnect_delay
        self._listener_task: Optional[asyncio.Task] = None
        self._ready = asyncio.Event()

    @property
    def is_listening(self) -> bool:
        return self._listener_task is not None and not self._listener_task.done()

    async def publish(self, event: TranscriptEvent) -> bool:
        try:
            await self._redis.publish(self.channel, json.dumps(event.to_dict()))
            return True
        except (RedisError, OSError) as e:
            logger.error(f"Failed to publish transcript event {event.id}: {e}")
            return False

    async def _on_subscribe(self):
        if self.is_listening:
            return
        self._ready.clear()
        self._listener_task = asyncio.create_task(self._listen())
        # Wait briefly for SUBSCRIBE so events published right after are seen
        try:
            await asyncio.wait_for(self._ready.wait(), timeout=self.reconnect_delay * 5)
        except asyncio.TimeoutError:
            logger.warning(f"Subscription to {self.channel} not confirmed yet")

    async def _listen(self):
        """Background loop receiving channel messages, reconnecting on errors."""
        while True:
            pubsub = self._redis.pubsub()
            try:
                await pubsub.subscribe(self.channel)
                logger.info(f"Subscribed to {self.channel}")
                self._ready.set()

                async for message in pubsub.listen():
                    if message.get("type") != "message":
                        continue
                    event = self._decode(message.get("data"))
                    if event is not None:
                        await self._dispatch(event)

            except asyncio.CancelledError:
                raise
            except (RedisError, OSError) as e:
                logger.error(f"Event bus connection lost: {e}")
                await asyncio.sleep(self.reconnect_delay)
            finally:
                try:
                    await pubsub.aclose()
                except (RedisError, OSError):
                    pass

    def _decode(self, payload) -> Optional[TranscriptEvent]:
        if isinstance(payload, bytes):
            payload = payload.decode("utf-8", errors="replace")
        try:
            return TranscriptEvent.from_dict(json.loads(payload))
        except (TypeError, ValueError, KeyError) as e:
            logger.error(f"Failed to parse transcript message: {e}")
            return None

    async def close(self):
        await super().close()
        if self._listener_task:
            self._listener_task.cancel()
            try:
                await self._listener_task
            except asyncio.CancelledError:
                pass
            self._listener_task = None
        try:
            await self._redis.aclose()
        except (RedisError, OSError) as e:
            logger.warning(f"Error closing event bus client: {e}")
