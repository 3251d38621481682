"""In-memory broker — single-process implementation of the Broker interface.

Learn: Useful for tests and for trying workers locally without Redis.
It mirrors the Redis semantics the system relies on:

- blocking_pop hands a pushed entry straight to the longest-waiting
  popper, so every entry is delivered to at most one consumer
- TTLs are checked lazily on read against an injectable clock, so tests
  can expire keys without sleeping
- publish schedules subscriber callbacks on the event loop and returns
  immediately; nothing is queued for subscribers that join later

State lives on the instance and survives close()/connect(), which lets
several short-lived "processes" (CLI invocations) share one broker.
"""

import asyncio
import time
from collections import deque
from typing import Callable, Optional

import structlog

from agentqueue.broker.base import Broker, MessageHandler, Subscription, invoke_handler
from agentqueue.errors import BrokerError, ConnectivityError

logger = structlog.get_logger()


class MemorySubscription(Subscription):
    def __init__(self, broker: "InMemoryBroker", channel: str, handler: MessageHandler):
        self._broker = broker
        self.channel = channel
        self.handler = handler

    async def close(self) -> None:
        handlers = self._broker._channels.get(self.channel)
        if handlers and self in handlers:
            handlers.remove(self)


class InMemoryBroker(Broker):
    """Broker whose state lives in this process."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._connected = False
        self._lists: dict[str, deque[str]] = {}
        self._values: dict[str, tuple[str, Optional[float]]] = {}
        self._waiters: dict[str, deque[asyncio.Future]] = {}
        self._channels: dict[str, list[MemorySubscription]] = {}
        self._pending_callbacks: set[asyncio.Task] = set()

    @property
    def connected(self) -> bool:
        return self._connected

    def _require_connection(self) -> None:
        if not self._connected:
            raise ConnectivityError("In-memory broker is not connected")

    async def connect(self) -> None:
        self._connected = True

    async def close(self) -> None:
        self._connected = False
        for subs in self._channels.values():
            subs.clear()
        for waiters in self._waiters.values():
            for fut in waiters:
                if not fut.done():
                    fut.set_exception(ConnectivityError("Broker closed during blocking pop"))
        self._waiters.clear()

    # ─── Lists ───────────────────────────────────────────

    async def push(self, key: str, payload: str, *, tail: bool = False) -> int:
        self._require_connection()
        if key in self._values:
            raise BrokerError(f"WRONGTYPE: {key} holds a plain value, not a list")

        # A waiting popper takes the entry directly
        waiters = self._waiters.get(key)
        while waiters:
            fut = waiters.popleft()
            if not fut.done():
                fut.set_result(payload)
                return len(self._lists.get(key, ()))

        entries = self._lists.setdefault(key, deque())
        if tail:
            entries.append(payload)
        else:
            entries.appendleft(payload)
        return len(entries)

    async def blocking_pop(self, key: str, timeout: float) -> Optional[str]:
        self._require_connection()
        entries = self._lists.get(key)
        if entries:
            payload = entries.popleft()
            if not entries:
                del self._lists[key]
            return payload

        fut = asyncio.get_running_loop().create_future()
        self._waiters.setdefault(key, deque()).append(fut)
        try:
            # Redis treats 0 as "block forever"
            return await asyncio.wait_for(fut, timeout=timeout or None)
        except asyncio.TimeoutError:
            return None
        finally:
            waiters = self._waiters.get(key)
            if waiters and fut in waiters:
                waiters.remove(fut)

    async def length(self, key: str) -> int:
        self._require_connection()
        return len(self._lists.get(key, ()))

    async def range(self, key: str, start: int, stop: int) -> list[str]:
        self._require_connection()
        entries = list(self._lists.get(key, ()))
        # Redis LRANGE: stop is inclusive, -1 means the last element
        stop = len(entries) - 1 if stop == -1 else stop
        return entries[start:stop + 1]

    async def delete(self, key: str) -> int:
        self._require_connection()
        removed = 0
        if self._lists.pop(key, None) is not None:
            removed += 1
        if self._values.pop(key, None) is not None:
            removed += 1
        return removed

    # ─── Key/value ───────────────────────────────────────

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        self._require_connection()
        expires_at = self._clock() + ttl_seconds if ttl_seconds else None
        self._values[key] = (value, expires_at)

    async def get(self, key: str) -> Optional[str]:
        self._require_connection()
        stored = self._values.get(key)
        if stored is None:
            return None
        value, expires_at = stored
        if expires_at is not None and self._clock() >= expires_at:
            del self._values[key]
            return None
        return value

    # ─── Pub/sub ─────────────────────────────────────────

    async def publish(self, channel: str, payload: str) -> int:
        self._require_connection()
        subscribers = list(self._channels.get(channel, ()))
        for sub in subscribers:
            task = asyncio.create_task(invoke_handler(sub.handler, payload))
            self._pending_callbacks.add(task)
            task.add_done_callback(self._pending_callbacks.discard)
        return len(subscribers)

    async def subscribe(self, channel: str, handler: MessageHandler) -> Subscription:
        self._require_connection()
        subscription = MemorySubscription(self, channel, handler)
        self._channels.setdefault(channel, []).append(subscription)
        return subscription

    async def drain(self) -> None:
        """Wait for every scheduled subscriber callback to finish."""
        while self._pending_callbacks:
            await asyncio.gather(*list(self._pending_callbacks))
