"""Redis broker — redis.asyncio implementation of the Broker interface.

Learn: Lists map onto LPUSH/RPUSH + BLPOP, key/value onto SET EX/GET and
pub/sub onto PUBLISH/SUBSCRIBE. BLPOP is atomic, so with several workers
on one queue each entry is delivered to exactly one of them.

Each subscription gets its own pub/sub connection and a background task
that reads it with pubsub.listen() — a connection in subscribe mode can't
run any other command, so the blocking pop keeps using the main pool.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Optional

import redis.asyncio as aioredis
import structlog
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from agentqueue.broker.base import Broker, MessageHandler, Subscription, invoke_handler
from agentqueue.errors import BrokerError, ConnectivityError

logger = structlog.get_logger()


@asynccontextmanager
async def _translate_errors(operation: str):
    """Re-raise redis-py exceptions as our own hierarchy."""
    try:
        yield
    except (RedisConnectionError, RedisTimeoutError, OSError) as e:
        raise ConnectivityError(f"Redis {operation} failed: {e}") from e
    except RedisError as e:
        raise BrokerError(f"Redis {operation} failed: {e}") from e


def _text(value) -> str:
    """Undecodable bytes come back as text with replacement characters,
    so a bad queue entry fails parsing rather than the read."""
    if isinstance(value, bytes):
        return value.decode("utf-8", "replace")
    return value


class RedisSubscription(Subscription):
    def __init__(self, pubsub, channel: str, task: asyncio.Task):
        self._pubsub = pubsub
        self._channel = channel
        self._task = task
        self._closed = False

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        try:
            await self._pubsub.unsubscribe(self._channel)
            await self._pubsub.aclose()
        except (RedisError, OSError) as e:
            logger.warning("redis.unsubscribe_failed", channel=self._channel, error=str(e))


class RedisBroker(Broker):
    """Broker backed by a Redis server."""

    def __init__(self, url: str = "redis://localhost:6379", client: Optional[aioredis.Redis] = None):
        self.url = url
        self._redis: Optional[aioredis.Redis] = client
        self._subscriptions: list[RedisSubscription] = []

    @property
    def client(self) -> aioredis.Redis:
        if self._redis is None:
            raise ConnectivityError("Redis not connected. Call connect() first.")
        return self._redis

    async def connect(self) -> None:
        if self._redis is None:
            self._redis = aioredis.from_url(
                self.url,
                encoding="utf-8",
                encoding_errors="replace",
                decode_responses=True,
            )
        # Verify connection
        async with _translate_errors("connect"):
            await self._redis.ping()
        logger.debug("redis.connected", url=self.url)

    async def close(self) -> None:
        for sub in self._subscriptions:
            await sub.close()
        self._subscriptions.clear()
        if self._redis is not None:
            try:
                await self._redis.aclose()
            finally:
                self._redis = None

    # ─── Lists ───────────────────────────────────────────

    async def push(self, key: str, payload: str, *, tail: bool = False) -> int:
        async with _translate_errors("push"):
            if tail:
                return await self.client.rpush(key, payload)
            return await self.client.lpush(key, payload)

    async def blocking_pop(self, key: str, timeout: float) -> Optional[str]:
        async with _translate_errors("blocking_pop"):
            popped = await self.client.blpop([key], timeout=timeout)
        if popped is None:
            return None
        _, payload = popped
        return _text(payload)

    async def length(self, key: str) -> int:
        async with _translate_errors("length"):
            return await self.client.llen(key)

    async def range(self, key: str, start: int, stop: int) -> list[str]:
        async with _translate_errors("range"):
            values = await self.client.lrange(key, start, stop)
        return [_text(v) for v in values]

    async def delete(self, key: str) -> int:
        async with _translate_errors("delete"):
            return await self.client.delete(key)

    # ─── Key/value ───────────────────────────────────────

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        async with _translate_errors("set"):
            await self.client.set(key, value, ex=ttl_seconds)

    async def get(self, key: str) -> Optional[str]:
        async with _translate_errors("get"):
            value = await self.client.get(key)
        return None if value is None else _text(value)

    # ─── Pub/sub ─────────────────────────────────────────

    async def publish(self, channel: str, payload: str) -> int:
        async with _translate_errors("publish"):
            return await self.client.publish(channel, payload)

    async def subscribe(self, channel: str, handler: MessageHandler) -> Subscription:
        pubsub = self.client.pubsub()
        async with _translate_errors("subscribe"):
            await pubsub.subscribe(channel)

        async def listener():
            try:
                async for message in pubsub.listen():
                    if message["type"] == "message":
                        await invoke_handler(handler, message["data"])
            except asyncio.CancelledError:
                pass
            except (RedisError, OSError) as e:
                # Notifications are best-effort: a dropped subscription is logged, not fatal
                logger.warning("redis.subscription_lost", channel=channel, error=str(e))

        task = asyncio.create_task(listener())
        subscription = RedisSubscription(pubsub, channel, task)
        self._subscriptions.append(subscription)
        return subscription
