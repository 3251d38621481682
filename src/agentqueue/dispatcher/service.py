"""Dispatcher service — enqueue tasks and inspect queues/agents.

Learn: Every broker failure is re-raised as DispatchError, which the CLI
turns into a red message and exit code 1. The dispatcher reads status
keys but never writes them — only workers own their liveness records.
"""

from contextlib import asynccontextmanager
from typing import Any, Optional

import structlog

from agentqueue.agents import AgentType
from agentqueue.broker import Broker
from agentqueue.config import Settings
from agentqueue.errors import BrokerError, DispatchError, SerializationError
from agentqueue.realtime.notifications import NotificationChannel
from agentqueue.schemas.agent import AgentStatusRecord
from agentqueue.schemas.task import Priority, TaskDescriptor, TaskResult
from agentqueue.services.result_store import ResultStore
from agentqueue.services.status_registry import StatusRegistry
from agentqueue.services.task_queue import TaskQueue

logger = structlog.get_logger()


@asynccontextmanager
async def _dispatch_errors(action: str):
    try:
        yield
    except (BrokerError, SerializationError) as e:
        raise DispatchError(f"{action}: {e}") from e


class Dispatcher:
    def __init__(self, broker: Broker, queue_order: str = "lifo"):
        self.broker = broker
        self.queue = TaskQueue(broker, order=queue_order)
        self.registry = StatusRegistry(broker)
        self.notifications = NotificationChannel(broker)
        self.results = ResultStore(broker)

    @classmethod
    def from_settings(cls, broker: Broker, settings: Settings) -> "Dispatcher":
        return cls(broker, queue_order=settings.queue_order)

    async def __aenter__(self) -> "Dispatcher":
        async with _dispatch_errors("connect"):
            await self.broker.connect()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.broker.close()

    async def dispatch(
        self,
        agent_type: AgentType,
        description: str,
        priority: Priority = Priority.NORMAL,
        metadata: Optional[dict[str, Any]] = None,
    ) -> TaskDescriptor:
        """Enqueue a new pending task and announce it. Returns the descriptor."""
        descriptor = TaskDescriptor.create(agent_type, description, priority, metadata)
        async with _dispatch_errors("dispatch"):
            await self.queue.enqueue(agent_type, descriptor)
            receivers = await self.notifications.publish(agent_type, descriptor)
        logger.debug(
            "dispatcher.dispatched",
            agent=agent_type.value,
            task_id=descriptor.id,
            subscribers=receivers,
        )
        return descriptor

    async def status(self, agent_type: AgentType) -> AgentStatusRecord:
        """Status, heartbeat and queue length for one agent type (three independent reads)."""
        async with _dispatch_errors("status"):
            return AgentStatusRecord(
                agent_type=agent_type,
                status=await self.registry.get_status(agent_type),
                last_seen=await self.registry.get_last_seen(agent_type),
                queue_length=await self.queue.length(agent_type),
            )

    async def status_all(self) -> list[AgentStatusRecord]:
        return [await self.status(agent_type) for agent_type in AgentType]

    async def list_tasks(
        self, agent_type: Optional[AgentType] = None, limit: int = 10
    ) -> dict[AgentType, list[TaskDescriptor]]:
        """Peek up to ``limit`` upcoming tasks per queue, without consuming any."""
        agent_types = [agent_type] if agent_type else list(AgentType)
        async with _dispatch_errors("list"):
            return {a: await self.queue.peek(a, limit) for a in agent_types}

    async def clear(self, agent_type: Optional[AgentType] = None) -> list[AgentType]:
        """Drop every pending task in one queue, or in all of them."""
        agent_types = [agent_type] if agent_type else list(AgentType)
        async with _dispatch_errors("clear"):
            for a in agent_types:
                await self.queue.clear(a)
        return agent_types

    async def result(self, task_id: str) -> Optional[TaskResult]:
        """The stored outcome of a task, or None if unknown or expired."""
        async with _dispatch_errors("result"):
            return await self.results.get(task_id)
