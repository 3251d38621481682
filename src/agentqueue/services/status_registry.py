"""Status registry — per-agent liveness in two independent keys.

Learn: status ("online"/"offline") changes rarely: once at worker
startup and once on a clean stop. last_seen is the heartbeat, rewritten
on every poll cycle and after every task. They are separate SETs with no
transaction between them, so a reader can see "online" next to a stale
heartbeat (e.g. the worker crashed). Only the owning worker writes;
dispatchers only read.
"""

from datetime import datetime
from typing import Callable, Optional

from agentqueue.agents import AgentType, last_seen_key, status_key
from agentqueue.broker import Broker
from agentqueue.schemas.agent import AgentStatus
from agentqueue.schemas.task import utcnow


class StatusRegistry:
    def __init__(self, broker: Broker, clock: Callable[[], datetime] = utcnow):
        self.broker = broker
        self._clock = clock

    async def set_status(self, agent_type: AgentType, status: AgentStatus) -> None:
        await self.broker.set(status_key(agent_type), status.value)

    async def touch(self, agent_type: AgentType) -> datetime:
        """Write a fresh heartbeat and return it."""
        now = self._clock()
        await self.broker.set(last_seen_key(agent_type), now.isoformat())
        return now

    async def get_status(self, agent_type: AgentType) -> AgentStatus:
        """Stored status, or OFFLINE if no worker ever registered (or it's garbage)."""
        raw = await self.broker.get(status_key(agent_type))
        try:
            return AgentStatus(raw) if raw else AgentStatus.OFFLINE
        except ValueError:
            return AgentStatus.OFFLINE

    async def get_last_seen(self, agent_type: AgentType) -> Optional[datetime]:
        raw = await self.broker.get(last_seen_key(agent_type))
        if not raw:
            return None
        try:
            return datetime.fromisoformat(raw)
        except ValueError:
            return None
