"""Task queue — per-agent lists of pending task descriptors.

Learn: Ordering is decided by which end we push to. BLPOP always pops
from the head:

- lifo (default): LPUSH + BLPOP — the newest task is taken first
- fifo:           RPUSH + BLPOP — the oldest task is taken first

Either way, peek() returns entries in the order they will be dequeued.
Priority is carried on the descriptor but never reorders the list.
"""

from typing import Optional

import structlog

from agentqueue.agents import AgentType, queue_key
from agentqueue.broker import Broker
from agentqueue.errors import SerializationError
from agentqueue.schemas.task import TaskDescriptor

logger = structlog.get_logger()


class TaskQueue:
    def __init__(self, broker: Broker, order: str = "lifo"):
        if order not in ("lifo", "fifo"):
            raise ValueError(f"queue order must be 'lifo' or 'fifo', got {order!r}")
        self.broker = broker
        self.order = order

    async def enqueue(self, agent_type: AgentType, descriptor: TaskDescriptor) -> int:
        """Push a descriptor and return the new queue length."""
        length = await self.broker.push(
            queue_key(agent_type),
            descriptor.to_json(),
            tail=self.order == "fifo",
        )
        logger.debug("queue.enqueued", agent=agent_type.value, task_id=descriptor.id, length=length)
        return length

    async def dequeue(
        self, agent_type: AgentType, timeout: float
    ) -> tuple[Optional[TaskDescriptor], bool]:
        """Block up to ``timeout`` seconds for the next descriptor.

        Returns (descriptor, True) or (None, False) on timeout. A payload
        that isn't a valid descriptor is still consumed, and surfaces as
        SerializationError so the caller can record it as failed.
        """
        payload = await self.broker.blocking_pop(queue_key(agent_type), timeout)
        if payload is None:
            return None, False
        return TaskDescriptor.from_json(payload), True

    async def length(self, agent_type: AgentType) -> int:
        return await self.broker.length(queue_key(agent_type))

    async def peek(self, agent_type: AgentType, limit: int) -> list[TaskDescriptor]:
        """Up to ``limit`` upcoming descriptors, without consuming them.

        Entries that don't parse are skipped here (and logged) — peek is an
        inspection tool and must not fail on someone else's bad payload.
        """
        if limit <= 0:
            return []
        raw = await self.broker.range(queue_key(agent_type), 0, limit - 1)
        descriptors = []
        for payload in raw:
            try:
                descriptors.append(TaskDescriptor.from_json(payload))
            except SerializationError as e:
                logger.warning("queue.unreadable_entry", agent=agent_type.value, error=str(e))
        return descriptors

    async def clear(self, agent_type: AgentType) -> None:
        await self.broker.delete(queue_key(agent_type))
        logger.info("queue.cleared", agent=agent_type.value)
