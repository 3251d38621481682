"""Broker base — the capability interface the rest of the system uses.

Learn: Workers and dispatchers never talk to Redis directly. They talk to
a Broker, which exposes exactly three capabilities:

1. Lists — push, blocking pop (from the head), length, range, delete
2. Key/value — get, set with optional TTL
3. Pub/sub — publish, subscribe with a callback

Any backend offering those satisfies the system. RedisBroker is the
production backend; InMemoryBroker runs everything in one process (tests,
local experiments).

Backends must translate their own connection failures into
ConnectivityError and other failures into BrokerError.
"""

import asyncio
import inspect
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional, Union

import structlog

logger = structlog.get_logger()

MessageHandler = Callable[[str], Union[None, Awaitable[None]]]


class Subscription(ABC):
    """Handle for an active subscription. close() is idempotent."""

    @abstractmethod
    async def close(self) -> None:
        """Stop delivering messages to the handler."""


class Broker(ABC):
    """Abstract broker capability set."""

    async def __aenter__(self) -> "Broker":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ─── Lifecycle ───────────────────────────────────────

    @abstractmethod
    async def connect(self) -> None:
        """Open the connection and verify it. Raises ConnectivityError."""

    @abstractmethod
    async def close(self) -> None:
        """Release the connection (and any subscriptions)."""

    # ─── Lists ───────────────────────────────────────────

    @abstractmethod
    async def push(self, key: str, payload: str, *, tail: bool = False) -> int:
        """Push onto the head (default) or tail of a list. Returns the new length."""

    @abstractmethod
    async def blocking_pop(self, key: str, timeout: float) -> Optional[str]:
        """Pop from the head, waiting up to ``timeout`` seconds. None on timeout."""

    @abstractmethod
    async def length(self, key: str) -> int:
        """Number of entries in a list (0 if absent)."""

    @abstractmethod
    async def range(self, key: str, start: int, stop: int) -> list[str]:
        """Entries start..stop inclusive, counted from the head, without consuming."""

    @abstractmethod
    async def delete(self, key: str) -> int:
        """Delete a key of any kind. Returns the number of keys removed."""

    # ─── Key/value ───────────────────────────────────────

    @abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        """Set a value, optionally expiring after ``ttl_seconds``."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Get a value, or None if absent or expired."""

    # ─── Pub/sub ─────────────────────────────────────────

    @abstractmethod
    async def publish(self, channel: str, payload: str) -> int:
        """Fire-and-forget broadcast. Returns the number of receivers."""

    @abstractmethod
    async def subscribe(self, channel: str, handler: MessageHandler) -> Subscription:
        """Call ``handler(payload)`` for every message published while subscribed."""


async def invoke_handler(handler: Callable[..., Any], *args: Any) -> None:
    """Call a sync or async subscription handler, logging (not raising) its errors.

    Learn: A broken subscriber must never take down the listener task —
    notifications are observational only.
    """
    try:
        outcome = handler(*args)
        if inspect.isawaitable(outcome):
            await outcome
    except asyncio.CancelledError:
        raise
    except Exception:
        logger.exception("broker.subscriber_error")
