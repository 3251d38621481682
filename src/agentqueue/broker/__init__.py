"""Broker backends and the URL-based factory."""

from urllib.parse import urlparse

from agentqueue.broker.base import Broker, MessageHandler, Subscription
from agentqueue.broker.memory import InMemoryBroker
from agentqueue.broker.redis_broker import RedisBroker

__all__ = [
    "Broker",
    "InMemoryBroker",
    "MessageHandler",
    "RedisBroker",
    "Subscription",
    "create_broker",
]


def create_broker(url: str) -> Broker:
    """Pick a backend from the URL scheme: redis://, rediss://, unix:// or memory://."""
    scheme = urlparse(url).scheme
    if scheme == "memory":
        return InMemoryBroker()
    if scheme in ("redis", "rediss", "unix"):
        return RedisBroker(url)
    raise ValueError(f"Unsupported broker URL scheme {scheme!r} in {url!r}")
