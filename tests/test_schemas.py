"""Wire format and lifecycle tests for task schemas.

Learn: Tests cover:
1. camelCase wire keys matching what dispatchers and workers exchange
2. Monotonic status transitions (no skips, no regressions)
3. result|error exclusivity in stored results
4. SerializationError (with salvaged id) for bad payloads
"""

import json

import pytest

from agentqueue.agents import AgentType
from agentqueue.errors import InvalidTransitionError, SerializationError
from agentqueue.schemas.task import (
    NewTaskEvent,
    Priority,
    TaskDescriptor,
    TaskResult,
    TaskStatus,
)


def test_create_descriptor_defaults():
    task = TaskDescriptor.create(AgentType.DATA, "Scrape fixtures")
    assert task.status == TaskStatus.PENDING
    assert task.priority == Priority.NORMAL
    assert task.created_at.tzinfo is not None
    assert len(task.id) == 36


def test_descriptor_ids_are_unique():
    ids = {TaskDescriptor.create(AgentType.DATA, "x").id for _ in range(200)}
    assert len(ids) == 200


def test_descriptor_wire_keys_are_camel_case():
    task = TaskDescriptor.create(AgentType.QA, "Run smoke tests", Priority.HIGH)
    data = json.loads(task.to_json())
    assert {"id", "agentType", "description", "priority", "createdAt", "status"} <= set(data)
    assert data["agentType"] == "qa"
    assert data["priority"] == "high"
    assert data["status"] == "pending"


def test_descriptor_parses_wire_payload():
    payload = json.dumps({
        "id": "abc",
        "agentType": "data",
        "description": "Scrape table",
        "priority": "low",
        "createdAt": "2024-01-15T10:00:00+00:00",
        "status": "pending",
    })
    task = TaskDescriptor.from_json(payload)
    assert task.id == "abc"
    assert task.agent_type == AgentType.DATA
    assert task.priority == Priority.LOW


def test_metadata_is_kept_on_descriptor():
    task = TaskDescriptor.create(AgentType.FRONTEND, "Fix header", metadata={"issue": "42"})
    assert task.metadata == {"issue": "42"}


def test_invalid_json_raises_serialization_error():
    with pytest.raises(SerializationError) as exc:
        TaskDescriptor.from_json("{not json")
    assert exc.value.payload == "{not json"
    assert exc.value.task_id is None


def test_invalid_descriptor_salvages_id():
    with pytest.raises(SerializationError) as exc:
        TaskDescriptor.from_json(json.dumps({"id": "t-1", "agentType": "nope"}))
    assert exc.value.task_id == "t-1"


# ─── Lifecycle ───────────────────────────────────────────


def test_begin_complete_sequence():
    task = TaskDescriptor.create(AgentType.DATA, "Scrape fixtures")
    record = TaskResult.begin(task)
    assert record.status == TaskStatus.PROCESSING
    assert record.started_at is not None
    # The queue entry itself is untouched
    assert task.status == TaskStatus.PENDING

    record.complete({"rows": 3})
    assert record.status == TaskStatus.COMPLETED
    assert record.completed_at >= record.started_at
    assert record.result == {"rows": 3}


def test_fail_records_message():
    record = TaskResult.begin(TaskDescriptor.create(AgentType.DATA, "x"))
    record.fail("boom")
    assert record.status == TaskStatus.FAILED
    assert record.error == "boom"


def test_fail_with_empty_message_still_has_error():
    record = TaskResult.begin(TaskDescriptor.create(AgentType.DATA, "x"))
    record.fail("")
    assert record.error


def test_cannot_begin_twice():
    record = TaskResult.begin(TaskDescriptor.create(AgentType.DATA, "x"))
    with pytest.raises(InvalidTransitionError):
        TaskResult.begin(record)


def test_cannot_skip_processing():
    task = TaskDescriptor.create(AgentType.DATA, "x")
    record = TaskResult(**task.model_dump())
    with pytest.raises(InvalidTransitionError):
        record.complete("done")


def test_terminal_state_is_final():
    record = TaskResult.begin(TaskDescriptor.create(AgentType.DATA, "x"))
    record.complete("ok")
    with pytest.raises(InvalidTransitionError):
        record.fail("late failure")
    assert record.status == TaskStatus.COMPLETED


def test_unserialisable_result_leaves_task_processing():
    record = TaskResult.begin(TaskDescriptor.create(AgentType.DATA, "x"))
    with pytest.raises(SerializationError):
        record.complete(object())
    assert record.status == TaskStatus.PROCESSING
    record.fail("bad result")
    assert record.status == TaskStatus.FAILED


def test_completed_result_json_has_result_not_error():
    record = TaskResult.begin(TaskDescriptor.create(AgentType.DATA, "x")).complete([1, 2])
    data = json.loads(record.to_json())
    assert data["result"] == [1, 2]
    assert "error" not in data
    assert "startedAt" in data and "completedAt" in data


def test_failed_result_json_has_error_not_result():
    record = TaskResult.begin(TaskDescriptor.create(AgentType.DATA, "x")).fail("nope")
    data = json.loads(record.to_json())
    assert data["error"] == "nope"
    assert "result" not in data


def test_new_task_event_wire_format():
    task = TaskDescriptor.create(AgentType.DATA, "Scrape fixtures")
    data = json.loads(NewTaskEvent(task=task).to_json())
    assert data["type"] == "new_task"
    assert data["task"]["id"] == task.id
