"""
In-memory fakes for the relay's network collaborators.

- FakeRedis: async stand-in for the redis.asyncio client (lists, hashes,
  TTLs, MULTI/EXEC pipelines, pub/sub)
- FakeProviderSocket: scripted Gladia streaming connection
"""

import asyncio
import json
from collections import defaultdict
from typing import List, Dict, Any, Optional

from redis.exceptions import ConnectionError as RedisConnectionError
from websockets.protocol import State


class FakeRedis:
    """Subset of redis.asyncio.Redis used by the relay, kept in memory."""

    def __init__(self):
        self.lists: Dict[str, List[str]] = {}
        self.hashes: Dict[str, Dict[str, str]] = {}
        self.ttls: Dict[str, int] = {}
        self.published: List[tuple] = []
        self.fail = False
        self._subscribers: Dict[str, List["FakePubSub"]] = defaultdict(list)

    def _check(self):
        if self.fail:
            raise RedisConnectionError("backend unavailable")

    def _exists(self, key: str) -> bool:
        return key in self.lists or key in self.hashes

    async def rpush(self, key: str, *values: str) -> int:
        self._check()
        items = self.lists.setdefault(key, [])
        items.extend(values)
        return len(items)

    async def hset(self, key: str, mapping: Optional[dict] = None, **kwargs) -> int:
        self._check()
        values = dict(mapping or {}, **kwargs)
        self.hashes.setdefault(key, {}).update({k: str(v) for k, v in values.items()})
        return len(values)

    async def expire(self, key: str, seconds: int) -> bool:
        self._check()
        if not self._exists(key):
            return False
        self.ttls[key] = int(seconds)
        return True

    async def ttl(self, key: str) -> int:
        self._check()
        if not self._exists(key):
            return -2
        return self.ttls.get(key, -1)

    async def lrange(self, key: str, start: int, end: int) -> List[str]:
        self._check()
        items = self.lists.get(key, [])
        return list(items[start:] if end == -1 else items[start:end + 1])

    async def hgetall(self, key: str) -> Dict[str, str]:
        self._check()
        return dict(self.hashes.get(key, {}))

    async def delete(self, *keys: str) -> int:
        self._check()
        removed = 0
        for key in keys:
            if self._exists(key):
                removed += 1
            self.lists.pop(key, None)
            self.hashes.pop(key, None)
            self.ttls.pop(key, None)
        return removed

    async def ping(self) -> bool:
        self._check()
        return True

    async def publish(self, channel: str, message: str) -> int:
        self._check()
        self.published.append((channel, message))
        receivers = list(self._subscribers.get(channel, []))
        for pubsub in receivers:
            pubsub.queue.put_nowait({"type": "message", "channel": channel, "data": message})
        return len(receivers)

    def pipeline(self, transaction: bool = True) -> "FakePipeline":
        return FakePipeline(self)

    def pubsub(self) -> "FakePubSub":
        return FakePubSub(self)

    async def aclose(self):
        pass


class FakePipeline:
    """Buffers commands and runs them on execute(), like a MULTI/EXEC pipeline."""

    def __init__(self, redis: FakeRedis):
        self._redis = redis
        self._commands: List[tuple] = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self._commands = []

    def __getattr__(self, name):
        command = getattr(self._redis, name)

        def queue(*args, **kwargs):
            self._commands.append((command, args, kwargs))
            return self
        return queue

    async def execute(self) -> list:
        self._redis._check()
        commands, self._commands = self._commands, []
        return [await command(*args, **kwargs) for command, args, kwargs in commands]


class FakePubSub:
    def __init__(self, redis: FakeRedis):
        self._redis = redis
        self.queue: asyncio.Queue = asyncio.Queue()
        self.channels: List[str] = []

    async def subscribe(self, *channels: str):
        self._redis._check()
        for channel in channels:
            self._redis._subscribers[channel].append(self)
            self.channels.append(channel)
            self.queue.put_nowait({"type": "subscribe", "channel": channel, "data": 1})

    async def listen(self):
        while True:
            yield await self.queue.get()

    async def aclose(self):
        for channel in self.channels:
            if self in self._redis._subscribers[channel]:
                self._redis._subscribers[channel].remove(self)
        self.channels = []


class FakeProviderSocket:
    """Scripted provider WebSocket: feed() inbound messages, inspect sent."""

    def __init__(self):
        self.state = State.OPEN
        self.sent: List[Dict[str, Any]] = []
        self._incoming: asyncio.Queue = asyncio.Queue()

    async def send(self, message: str):
        self.sent.append(json.loads(message))

    async def close(self):
        self.state = State.CLOSED
        self._incoming.put_nowait(None)

    def feed(self, message):
        self._incoming.put_nowait(message if isinstance(message, str) else json.dumps(message))

    def hang_up(self):
        self.state = State.CLOSED
        self._incoming.put_nowait(None)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._incoming.get()
        if item is None:
            raise StopAsyncIteration
        return item


def transcript_message(text: str, is_final: bool, start: float = 0.0, end: float = 1.0) -> dict:
    """A Gladia live transcript message."""
    return {
        "type": "transcript",
        "data": {
            "id": "utt-1",
            "is_final": is_final,
            "utterance": {"text": text, "start": start, "end": end, "language": "en"},
        },
    }

