"""Status registry tests — independent status/heartbeat keys."""

import pytest

from agentqueue.agents import AgentType, last_seen_key, status_key
from agentqueue.schemas.agent import AgentStatus
from agentqueue.services.status_registry import StatusRegistry


@pytest.mark.asyncio
async def test_unknown_agent_reads_offline_and_never_seen(broker):
    registry = StatusRegistry(broker)
    assert await registry.get_status(AgentType.DATA) == AgentStatus.OFFLINE
    assert await registry.get_last_seen(AgentType.DATA) is None


@pytest.mark.asyncio
async def test_set_status_writes_status_key_only(broker):
    registry = StatusRegistry(broker)
    await registry.set_status(AgentType.DATA, AgentStatus.ONLINE)
    assert await broker.get(status_key(AgentType.DATA)) == "online"
    assert await broker.get(last_seen_key(AgentType.DATA)) is None
    assert await registry.get_status(AgentType.DATA) == AgentStatus.ONLINE


@pytest.mark.asyncio
async def test_touch_writes_heartbeat_only(broker, wall_clock):
    registry = StatusRegistry(broker, clock=wall_clock)
    seen = await registry.touch(AgentType.QA)
    assert await registry.get_last_seen(AgentType.QA) == seen
    assert await broker.get(status_key(AgentType.QA)) is None


@pytest.mark.asyncio
async def test_heartbeat_is_non_decreasing(broker, wall_clock):
    registry = StatusRegistry(broker, clock=wall_clock)
    readings = []
    for _ in range(5):
        await registry.touch(AgentType.DATA)
        readings.append(await registry.get_last_seen(AgentType.DATA))
    assert readings == sorted(readings)
    assert readings[-1] > readings[0]


@pytest.mark.asyncio
async def test_garbage_values_read_as_defaults(broker):
    registry = StatusRegistry(broker)
    await broker.set(status_key(AgentType.DATA), "sleeping")
    await broker.set(last_seen_key(AgentType.DATA), "yesterday")
    assert await registry.get_status(AgentType.DATA) == AgentStatus.OFFLINE
    assert await registry.get_last_seen(AgentType.DATA) is None
