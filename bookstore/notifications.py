"""
Bookstore Service — 通知チャネル (Notification Fan-out)

単一トピックへのブロードキャスト。publish 時点で購読中の
全サブスクライバーに同じメッセージが届く。

注意: fire-and-forget 方式。購読していない間のメッセージは失われ、
再送やバッファリングは行わない。

- InMemoryChannel: 単一プロセス用。サブスクライバーごとのキュー
- RedisChannel:    Redis Pub/Sub。複数ワーカーでトピックを共有する
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)


class NotificationChannel(ABC):
    def __init__(self, topic: str) -> None:
        self.topic = topic

    @abstractmethod
    async def publish(self, message: str) -> None:
        """購読中の全サブスクライバーへメッセージを送る。"""

    @abstractmethod
    def subscribe(self):
        """
        購読用の非同期コンテキストマネージャを返す。
        with ブロック内ではメッセージの非同期イテレータが得られ、
        ブロックを抜けると購読解除される。
        """

    async def close(self) -> None:
        pass


class InMemoryChannel(NotificationChannel):
    def __init__(self, topic: str) -> None:
        super().__init__(topic)
        self._subscribers: set[asyncio.Queue] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def publish(self, message: str) -> None:
        # キューは上限なしなので遅いサブスクライバーがいても待たない
        for queue in list(self._subscribers):
            queue.put_nowait(message)
        logger.debug(
            "Published to %s (%d subscribers)", self.topic, len(self._subscribers)
        )

    @asynccontextmanager
    async def subscribe(self):
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.add(queue)
        logger.info("Subscribed to %s channel", self.topic)
        try:
            yield _drain(queue)
        finally:
            self._subscribers.discard(queue)
            logger.info("Unsubscribed from %s channel", self.topic)


async def _drain(queue: asyncio.Queue) -> AsyncIterator[str]:
    while True:
        yield await queue.get()


class RedisChannel(NotificationChannel):
    def __init__(self, redis: aioredis.Redis, topic: str) -> None:
        super().__init__(topic)
        self.redis = redis

    @classmethod
    def from_url(cls, redis_url: str, topic: str) -> "RedisChannel":
        return cls(aioredis.from_url(redis_url, decode_responses=True), topic)

    async def publish(self, message: str) -> None:
        receivers = await self.redis.publish(self.topic, message)
        logger.debug("Published to %s (%s receivers)", self.topic, receivers)

    @asynccontextmanager
    async def subscribe(self):
        pubsub = self.redis.pubsub()
        await pubsub.subscribe(self.topic)
        logger.info("Subscribed to %s channel", self.topic)
        try:
            yield self._listen(pubsub)
        finally:
            await pubsub.unsubscribe(self.topic)
            await pubsub.aclose()

    async def _listen(self, pubsub) -> AsyncIterator[str]:
        while True:
            message = await pubsub.get_message(
                ignore_subscribe_messages=True, timeout=1.0
            )
            if message and message["type"] == "message":
                yield message["data"]
            else:
                await asyncio.sleep(0.1)

    async def close(self) -> None:
        await self.redis.aclose()


def create_channel(redis_url: str, topic: str) -> NotificationChannel:
    """REDIS_URL があれば Redis、無ければインメモリのチャネルを作る。"""
    if redis_url:
        return RedisChannel.from_url(redis_url, topic)
    return InMemoryChannel(topic)
