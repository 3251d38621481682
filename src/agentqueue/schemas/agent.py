"""Schemas for agent liveness, as read back by the dispatcher."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from agentqueue.agents import AgentType


class AgentStatus(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"


class AgentStatusRecord(BaseModel):
    """Status + heartbeat for one agent type.

    Learn: status and last_seen are separate keys written by separate
    commands. A crashed worker leaves status=online with a stale
    last_seen; callers should look at both.
    """

    agent_type: AgentType
    status: AgentStatus = AgentStatus.OFFLINE
    last_seen: Optional[datetime] = None
    queue_length: int = 0
