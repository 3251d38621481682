"""Notification channel — "new task" broadcasts per agent type.

Learn: Pub/sub is fire-and-forget. If no worker is subscribed when the
dispatcher publishes, the event is simply lost — that's fine, because
workers make progress through the blocking pop, never through these
events. Subscribers use them for logging/visibility only.

Channel naming: agent:{agent_type}:notification
Payload: {"type": "new_task", "task": {...descriptor...}}
"""

import inspect
from typing import Awaitable, Callable, Union

import structlog

from agentqueue.agents import AgentType, notification_channel
from agentqueue.broker import Broker, Subscription
from agentqueue.errors import SerializationError
from agentqueue.schemas.task import NewTaskEvent, TaskDescriptor

logger = structlog.get_logger()

EventHandler = Callable[[NewTaskEvent], Union[None, Awaitable[None]]]


class NotificationChannel:
    def __init__(self, broker: Broker):
        self.broker = broker

    async def publish(self, agent_type: AgentType, descriptor: TaskDescriptor) -> int:
        """Broadcast a new_task event. Returns how many subscribers received it."""
        event = NewTaskEvent(task=descriptor)
        return await self.broker.publish(notification_channel(agent_type), event.to_json())

    async def subscribe(self, agent_type: AgentType, on_event: EventHandler) -> Subscription:
        """Invoke ``on_event`` for each well-formed new_task event on the channel."""
        channel = notification_channel(agent_type)

        async def handle(payload: str) -> None:
            try:
                event = NewTaskEvent.from_json(payload)
            except SerializationError as e:
                logger.warning("notification.malformed", channel=channel, error=str(e))
                return
            outcome = on_event(event)
            if inspect.isawaitable(outcome):
                await outcome

        return await self.broker.subscribe(channel, handle)
