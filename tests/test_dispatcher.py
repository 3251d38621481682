"""Dispatcher service tests — one-shot operations against the queues."""

import pytest

from agentqueue.agents import AgentType
from agentqueue.broker import InMemoryBroker
from agentqueue.dispatcher import Dispatcher
from agentqueue.errors import ConnectivityError, DispatchError
from agentqueue.realtime.notifications import NotificationChannel
from agentqueue.schemas.agent import AgentStatus
from agentqueue.schemas.task import Priority, TaskResult, TaskStatus
from agentqueue.services.result_store import ResultStore
from agentqueue.services.status_registry import StatusRegistry


@pytest.mark.asyncio
async def test_dispatch_enqueues_pending_task(broker):
    d = Dispatcher(broker)
    task = await d.dispatch(AgentType.DATA, "Scrape fixtures", Priority.HIGH)

    assert task.status == TaskStatus.PENDING
    assert task.priority == Priority.HIGH
    queued = await d.list_tasks(AgentType.DATA, 10)
    assert [t.id for t in queued[AgentType.DATA]] == [task.id]


@pytest.mark.asyncio
async def test_dispatch_publishes_notification(broker):
    events = []
    await NotificationChannel(broker).subscribe(AgentType.DATA, events.append)

    task = await Dispatcher(broker).dispatch(AgentType.DATA, "Scrape table")
    await broker.drain()
    assert [e.task.id for e in events] == [task.id]


@pytest.mark.asyncio
async def test_list_shows_latest_first(broker):
    d = Dispatcher(broker)
    a = await d.dispatch(AgentType.DATA, "A")
    b = await d.dispatch(AgentType.DATA, "B")

    queued = await d.list_tasks(AgentType.DATA, 2)
    assert [t.id for t in queued[AgentType.DATA]] == [b.id, a.id]


@pytest.mark.asyncio
async def test_list_all_queues(broker):
    d = Dispatcher(broker)
    await d.dispatch(AgentType.QA, "Run tests")
    queued = await d.list_tasks(limit=5)
    assert set(queued) == set(AgentType)
    assert len(queued[AgentType.QA]) == 1
    assert queued[AgentType.DATA] == []


@pytest.mark.asyncio
async def test_status_without_worker(broker):
    d = Dispatcher(broker)
    await d.dispatch(AgentType.DATA, "A")
    await d.dispatch(AgentType.DATA, "B")

    record = await d.status(AgentType.DATA)
    assert record.status == AgentStatus.OFFLINE
    assert record.last_seen is None
    assert record.queue_length == 2


@pytest.mark.asyncio
async def test_status_reads_worker_records(broker, wall_clock):
    registry = StatusRegistry(broker, clock=wall_clock)
    await registry.set_status(AgentType.FRONTEND, AgentStatus.ONLINE)
    seen = await registry.touch(AgentType.FRONTEND)

    record = await Dispatcher(broker).status(AgentType.FRONTEND)
    assert record.status == AgentStatus.ONLINE
    assert record.last_seen == seen


@pytest.mark.asyncio
async def test_status_all_covers_every_agent(broker):
    records = await Dispatcher(broker).status_all()
    assert [r.agent_type for r in records] == list(AgentType)


@pytest.mark.asyncio
async def test_clear_one_queue(broker):
    d = Dispatcher(broker)
    for i in range(3):
        await d.dispatch(AgentType.DATA, f"task {i}")
    await d.dispatch(AgentType.QA, "keep me")

    assert await d.clear(AgentType.DATA) == [AgentType.DATA]
    assert (await d.status(AgentType.DATA)).queue_length == 0
    assert (await d.status(AgentType.QA)).queue_length == 1


@pytest.mark.asyncio
async def test_clear_all_queues(broker):
    d = Dispatcher(broker)
    await d.dispatch(AgentType.DATA, "x")
    await d.dispatch(AgentType.DEVOPS, "y")
    await d.clear()
    assert all(r.queue_length == 0 for r in await d.status_all())


@pytest.mark.asyncio
async def test_result_lookup(broker):
    d = Dispatcher(broker)
    task = await d.dispatch(AgentType.DATA, "x")
    assert await d.result(task.id) is None

    await ResultStore(broker).save(TaskResult.begin(task).complete("done"))
    assert (await d.result(task.id)).result == "done"


@pytest.mark.asyncio
async def test_broker_failure_becomes_dispatch_error(broker):
    await broker.close()
    with pytest.raises(DispatchError):
        await Dispatcher(broker).dispatch(AgentType.DATA, "x")


@pytest.mark.asyncio
async def test_connect_failure_becomes_dispatch_error():
    class DownBroker(InMemoryBroker):
        async def connect(self):
            raise ConnectivityError("refused")

    with pytest.raises(DispatchError):
        async with Dispatcher(DownBroker()):
            pass
