"""Exception hierarchy.

Learn: Every failure the worker loop or the CLI has to reason about maps
to one class here. Backend-specific exceptions (redis-py) are translated
at the broker boundary, so nothing above it imports redis.
"""

from typing import Optional


class AgentQueueError(Exception):
    """Base class for all agentqueue errors."""


class UnknownAgentTypeError(AgentQueueError, ValueError):
    """Agent type is not one of the configured queues."""


class BrokerError(AgentQueueError):
    """A broker operation failed."""


class ConnectivityError(BrokerError):
    """Broker unreachable — fatal at startup, retried inside the worker loop."""


class SerializationError(AgentQueueError):
    """A payload could not be parsed into the expected model.

    ``task_id`` is filled in when the payload was at least a JSON object
    carrying an ``id``, so the failure can still be recorded against it.
    """

    def __init__(self, message: str, payload: str = "", task_id: Optional[str] = None):
        super().__init__(message)
        self.payload = payload
        self.task_id = task_id


class HandlerError(AgentQueueError):
    """A task handler rejected its task."""


class DispatchError(AgentQueueError):
    """A dispatcher command failed against the broker."""


class InvalidTransitionError(AgentQueueError):
    """A task status change would regress or skip a lifecycle step."""
