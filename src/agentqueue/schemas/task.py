"""Pydantic schemas for task descriptors, results and notifications.

Learn: These are the wire formats. Field names are snake_case in Python
and camelCase on the wire (``agent_type`` ↔ ``agentType``), via the
alias generator on WireModel.

- TaskDescriptor: what the dispatcher pushes onto a queue (status=pending)
- TaskResult: what a worker writes to task:{id} (adds timing + outcome)
- NewTaskEvent: what the dispatcher publishes on the notification channel

Status transitions are enforced here, not in the worker:
pending → processing → completed | failed, nothing else.
"""

import json
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticSerializationError, to_jsonable_python

from agentqueue.agents import AgentType
from agentqueue.errors import InvalidTransitionError, SerializationError
from agentqueue.events.types import NEW_TASK


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Priority(str, Enum):
    """Informational only — the queue is never reordered by priority."""
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


class TaskStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED)


_ALLOWED_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.PENDING: frozenset({TaskStatus.PROCESSING}),
    TaskStatus.PROCESSING: frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED}),
    TaskStatus.COMPLETED: frozenset(),
    TaskStatus.FAILED: frozenset(),
}


def _salvage_id(payload: str) -> Optional[str]:
    """Best-effort id extraction from a payload that failed validation."""
    try:
        data = json.loads(payload)
    except (TypeError, ValueError):
        return None
    if isinstance(data, dict) and isinstance(data.get("id"), str) and data["id"]:
        return data["id"]
    return None


class WireModel(BaseModel):
    """Base for everything that crosses the broker as JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, payload):
        """Parse a wire payload, raising SerializationError instead of ValidationError."""
        try:
            return cls.model_validate_json(payload)
        except ValidationError as e:
            text = payload.decode("utf-8", "replace") if isinstance(payload, bytes) else str(payload)
            raise SerializationError(
                f"Invalid {cls.__name__} payload: {e.error_count()} validation error(s)",
                payload=text,
                task_id=_salvage_id(text),
            ) from e


# ─── Tasks ───────────────────────────────────────────────

class TaskDescriptor(WireModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), min_length=1)
    agent_type: AgentType
    description: str = Field(..., min_length=1)
    priority: Priority = Priority.NORMAL
    created_at: datetime = Field(default_factory=utcnow)
    status: TaskStatus = TaskStatus.PENDING
    metadata: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def create(
        cls,
        agent_type: AgentType,
        description: str,
        priority: Priority = Priority.NORMAL,
        metadata: Optional[dict[str, Any]] = None,
    ) -> "TaskDescriptor":
        """New pending descriptor with a fresh UUID and createdAt=now."""
        return cls(
            agent_type=agent_type,
            description=description,
            priority=priority,
            metadata=metadata or {},
        )


class TaskResult(TaskDescriptor):
    """A descriptor plus its outcome. Written once, under task:{id}, with a TTL."""

    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    result: Any = None
    error: Optional[str] = None

    @classmethod
    def begin(cls, descriptor: TaskDescriptor) -> "TaskResult":
        """pending → processing. The queue entry itself is never rewritten."""
        _check_transition(descriptor.id, descriptor.status, TaskStatus.PROCESSING)
        fields = descriptor.model_dump()
        fields.update(status=TaskStatus.PROCESSING, started_at=utcnow())
        return cls(**fields)

    def complete(self, result: Any) -> "TaskResult":
        """processing → completed. Raises SerializationError if result is not JSON-able."""
        _check_transition(self.id, self.status, TaskStatus.COMPLETED)
        try:
            to_jsonable_python(result)
        except PydanticSerializationError as e:
            raise SerializationError(
                f"Handler result is not JSON-serialisable: {e}", task_id=self.id
            ) from e
        self.result = result
        self.status = TaskStatus.COMPLETED
        self.completed_at = utcnow()
        return self

    def fail(self, message: str) -> "TaskResult":
        """processing → failed, with a non-empty error message."""
        _check_transition(self.id, self.status, TaskStatus.FAILED)
        self.error = message or "Task failed without an error message"
        self.status = TaskStatus.FAILED
        self.completed_at = utcnow()
        return self

    def to_json(self) -> str:
        # Only the field matching the outcome (result or error) is written
        exclude: set[str] = set()
        if self.status == TaskStatus.COMPLETED:
            exclude.add("error")
        elif self.status == TaskStatus.FAILED:
            exclude.add("result")
        return self.model_dump_json(by_alias=True, exclude=exclude)


def _check_transition(task_id: str, current: TaskStatus, target: TaskStatus) -> None:
    if target not in _ALLOWED_TRANSITIONS[current]:
        raise InvalidTransitionError(
            f"Task {task_id}: cannot move from {current.value} to {target.value}"
        )


# ─── Notifications ───────────────────────────────────────

class NewTaskEvent(WireModel):
    type: Literal["new_task"] = NEW_TASK
    task: TaskDescriptor
