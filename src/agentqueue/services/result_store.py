"""Result store — one TTL-bounded record per task under task:{id}.

Learn: The broker garbage-collects results (SET ... EX ttl); nothing in
this system ever deletes them. Default retention is 24 hours.
"""

from typing import Optional

from agentqueue.agents import result_key
from agentqueue.broker import Broker
from agentqueue.schemas.task import TaskResult

DEFAULT_RESULT_TTL = 86400


class ResultStore:
    def __init__(self, broker: Broker, ttl_seconds: int = DEFAULT_RESULT_TTL):
        self.broker = broker
        self.ttl_seconds = ttl_seconds

    async def save(self, record: TaskResult) -> None:
        await self.broker.set(result_key(record.id), record.to_json(), ttl_seconds=self.ttl_seconds)

    async def get(self, task_id: str) -> Optional[TaskResult]:
        payload = await self.broker.get(result_key(task_id))
        if payload is None:
            return None
        return TaskResult.from_json(payload)
