"""Shared fixtures — an in-memory broker driven by a fake clock.

Learn: Everything above the broker is tested against InMemoryBroker, so
no Redis server is needed. The fake clocks let tests expire TTL keys and
advance heartbeats without sleeping.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from agentqueue.broker import InMemoryBroker


class FakeClock:
    """Monotonic seconds, advanced by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeWallClock:
    """UTC datetimes that move forward one second per call."""

    def __init__(self):
        self.now = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


async def _wait_until(predicate, timeout: float = 2.0, interval: float = 0.01):
    """Poll ``predicate`` (sync or async) until truthy, or fail the test."""
    deadline = asyncio.get_running_loop().time() + timeout
    while True:
        value = predicate()
        if asyncio.iscoroutine(value):
            value = await value
        if value:
            return value
        if asyncio.get_running_loop().time() > deadline:
            pytest.fail("condition not met before timeout")
        await asyncio.sleep(interval)


@pytest.fixture()
def wait_until():
    return _wait_until


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def wall_clock():
    return FakeWallClock()


@pytest_asyncio.fixture()
async def broker(clock):
    """Connected in-memory broker; state survives close()/connect()."""
    b = InMemoryBroker(clock=clock)
    await b.connect()
    try:
        yield b
    finally:
        await b.close()
