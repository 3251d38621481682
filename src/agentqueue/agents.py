"""Agent types and broker key naming.

Learn: The set of agent types is fixed configuration, built once at
import time. AGENT_NAMES is a read-only mapping, so no module can add or
rename an agent at runtime.

Key layout (shared by workers and dispatchers):
    tasks:{agent}                   — pending task list
    agent:{agent}:status            — "online" / "offline"
    agent:{agent}:last_seen         — ISO-8601 heartbeat
    agent:{agent}:notification      — pub/sub channel for new tasks
    task:{task_id}                  — result record (TTL)
"""

from enum import Enum
from types import MappingProxyType
from typing import Mapping, Union

from agentqueue.errors import UnknownAgentTypeError


class AgentType(str, Enum):
    DATA = "data"
    FRONTEND = "frontend"
    BACKEND = "backend"
    DEVOPS = "devops"
    QA = "qa"

    def __str__(self) -> str:
        return self.value


AGENT_NAMES: Mapping[AgentType, str] = MappingProxyType({
    AgentType.DATA: "Data Collection Agent",
    AgentType.FRONTEND: "Frontend Development Agent",
    AgentType.BACKEND: "Backend Development Agent",
    AgentType.DEVOPS: "DevOps Agent",
    AgentType.QA: "QA Testing Agent",
})


def resolve_agent_type(value: Union[str, AgentType]) -> AgentType:
    """Turn a CLI/env string into an AgentType, or raise UnknownAgentTypeError."""
    if isinstance(value, AgentType):
        return value
    try:
        return AgentType(value.strip().lower())
    except ValueError:
        known = ", ".join(a.value for a in AgentType)
        raise UnknownAgentTypeError(f"Unknown agent type {value!r} (expected one of: {known})") from None


def display_name(agent_type: AgentType) -> str:
    return AGENT_NAMES[agent_type]


# ─── Key naming ──────────────────────────────────────────


def queue_key(agent_type: AgentType) -> str:
    return f"tasks:{agent_type.value}"


def status_key(agent_type: AgentType) -> str:
    return f"agent:{agent_type.value}:status"


def last_seen_key(agent_type: AgentType) -> str:
    return f"agent:{agent_type.value}:last_seen"


def notification_channel(agent_type: AgentType) -> str:
    return f"agent:{agent_type.value}:notification"


def result_key(task_id: str) -> str:
    return f"task:{task_id}"
