"""Agent worker — long-running consumer for one agent type's queue.

Learn: One worker process serves one agent type. Its lifecycle:

  disconnected → connected → running → stopping → stopped

While running, each loop iteration:
1. Blocking-pops the next task (poll_timeout, 5s by default)
2. If one arrived: pending → processing, run the handler,
   → completed | failed, write the result to task:{id} with a TTL
3. Touches the heartbeat (whether or not a task arrived)

Failure handling:
- Handler errors are per-task: the task is recorded failed, the loop continues
- Unparseable queue entries are recorded failed the same way
- Broker errors abort the iteration, get logged, and the loop backs off
  (error_backoff, 5s) before retrying — they never end the process
- Connection failure at startup is fatal

There is no ack/lease: a worker that dies between pop and result write
loses that task. Handlers are not time-boxed.
"""

import asyncio
import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

import structlog

from agentqueue.agents import AgentType
from agentqueue.broker import Broker, Subscription
from agentqueue.config import Settings
from agentqueue.errors import ConnectivityError, InvalidTransitionError, SerializationError
from agentqueue.handlers import TaskHandler, call_handler
from agentqueue.realtime.notifications import NotificationChannel
from agentqueue.schemas.agent import AgentStatus
from agentqueue.schemas.task import NewTaskEvent, TaskDescriptor, TaskResult, TaskStatus, utcnow
from agentqueue.services.result_store import DEFAULT_RESULT_TTL, ResultStore
from agentqueue.services.status_registry import StatusRegistry
from agentqueue.services.task_queue import TaskQueue

logger = structlog.get_logger()


class WorkerState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


@dataclass
class WorkerStats:
    """Runtime counters for logging and tests."""
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    idle_polls: int = 0
    loop_errors: int = 0
    notifications: int = 0
    started_at: Optional[datetime] = None

    def as_dict(self) -> dict:
        return {
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "idle_polls": self.idle_polls,
            "loop_errors": self.loop_errors,
            "notifications": self.notifications,
            "started_at": self.started_at.isoformat() if self.started_at else None,
        }


class AgentWorker:
    """Pulls tasks for one agent type and runs them through a handler."""

    def __init__(
        self,
        name: str,
        agent_type: AgentType,
        handler: TaskHandler,
        broker: Broker,
        *,
        poll_timeout: float = 5.0,
        error_backoff: float = 5.0,
        result_ttl: int = DEFAULT_RESULT_TTL,
        queue_order: str = "lifo",
        clock: Callable[[], datetime] = utcnow,
    ):
        self.name = name
        self.agent_type = agent_type
        self.handler = handler
        self.broker = broker
        self.poll_timeout = poll_timeout
        self.error_backoff = error_backoff

        self.queue = TaskQueue(broker, order=queue_order)
        self.results = ResultStore(broker, ttl_seconds=result_ttl)
        self.registry = StatusRegistry(broker, clock=clock)
        self.notifications = NotificationChannel(broker)

        self.state = WorkerState.DISCONNECTED
        self.stats = WorkerStats()
        self._running = False
        self._stop_requested = False
        self._serving = False
        self._registered = False
        self._subscription: Optional[Subscription] = None
        self._wake = asyncio.Event()
        self._finished = asyncio.Event()
        self._log = logger.bind(worker=name, agent=agent_type.value)

    @classmethod
    def from_settings(
        cls,
        name: str,
        agent_type: AgentType,
        handler: TaskHandler,
        broker: Broker,
        settings: Settings,
    ) -> "AgentWorker":
        return cls(
            name,
            agent_type,
            handler,
            broker,
            poll_timeout=settings.poll_timeout_seconds,
            error_backoff=settings.error_backoff_seconds,
            result_ttl=settings.result_ttl_seconds,
            queue_order=settings.queue_order,
        )

    @property
    def running(self) -> bool:
        return self._running

    # ─── Lifecycle ───────────────────────────────────────

    async def connect(self) -> None:
        """disconnected → connected. Raises ConnectivityError (fatal)."""
        try:
            await self.broker.connect()
        except ConnectivityError as e:
            self._log.error("worker.connect_failed", error=str(e))
            raise
        self.state = WorkerState.CONNECTED
        self._log.info("worker.connected")

    async def start(self) -> None:
        """Connect, register and run the loop until a stop is requested.

        The stop sequence (offline status, disconnect) runs on the way out,
        including when this coroutine is cancelled. A stop requested while
        still starting up skips the loop entirely.
        """
        if self._stop_requested:
            return
        self._serving = True
        self._finished.clear()
        try:
            await self.connect()
            self._subscription = await self.notifications.subscribe(
                self.agent_type, self._on_new_task
            )
            await self.registry.set_status(self.agent_type, AgentStatus.ONLINE)
            self._registered = True

            if self._stop_requested:
                return
            self._running = True
            self.state = WorkerState.RUNNING
            self.stats.started_at = utcnow()
            self._log.info("worker.started", poll_timeout=self.poll_timeout)

            while self._running:
                await self.run_once()
        finally:
            await self._shutdown()

    def request_stop(self) -> None:
        """Ask the loop to exit after the current iteration. Safe from signal handlers."""
        if self._running or self._serving:
            self._log.info("worker.stop_requested")
        self._stop_requested = True
        self._running = False
        self._wake.set()

    async def stop(self) -> None:
        """Explicit stop: ends the loop, marks the agent offline, disconnects."""
        self.request_stop()
        if self._serving:
            await self._finished.wait()
        else:
            await self._shutdown()

    async def _shutdown(self) -> None:
        if self.state == WorkerState.STOPPED:
            return
        self.state = WorkerState.STOPPING
        self._running = False
        self._log.info("worker.stopping")
        try:
            if self._subscription is not None:
                await self._subscription.close()
                self._subscription = None
            if self._registered:
                await self.registry.set_status(self.agent_type, AgentStatus.OFFLINE)
                self._registered = False
        except Exception as e:
            self._log.error("worker.offline_update_failed", error=str(e))
        finally:
            await self.broker.close()
            self.state = WorkerState.STOPPED
            self._serving = False
            self._finished.set()
            self._log.info("worker.stopped", **self.stats.as_dict())

    # ─── Loop ────────────────────────────────────────────

    async def run_once(self) -> bool:
        """One loop iteration. Returns True if a queue entry was consumed."""
        try:
            try:
                descriptor, found = await self.queue.dequeue(self.agent_type, self.poll_timeout)
            except SerializationError as e:
                found = True
                await self._record_malformed(e)
            else:
                if found:
                    await self._process(descriptor)
                else:
                    self.stats.idle_polls += 1

            await self.registry.touch(self.agent_type)
            return found
        except Exception as e:
            self.stats.loop_errors += 1
            self._log.exception("worker.loop_error", error=str(e), backoff=self.error_backoff)
            await self._backoff()
            return False

    async def _backoff(self) -> None:
        """Sleep error_backoff seconds, waking early if a stop is requested."""
        self._wake.clear()
        if not self._running:
            return
        try:
            await asyncio.wait_for(self._wake.wait(), timeout=self.error_backoff)
        except asyncio.TimeoutError:
            pass

    async def _process(self, descriptor: TaskDescriptor) -> Optional[TaskResult]:
        try:
            record = TaskResult.begin(descriptor)
        except InvalidTransitionError as e:
            # Never overwrite or regress a task someone already finished
            self._log.warning("worker.task_skipped", task_id=descriptor.id, error=str(e))
            return None

        self.stats.processed += 1
        self._log.info("worker.task_started", task_id=record.id, description=record.description)

        try:
            value = await call_handler(self.handler, record.model_copy(deep=True))
            record.complete(value)
        except Exception as e:
            record.fail(str(e) or type(e).__name__)

        await self.results.save(record)

        if record.status == TaskStatus.COMPLETED:
            self.stats.succeeded += 1
            self._log.info("worker.task_completed", task_id=record.id)
        else:
            self.stats.failed += 1
            self._log.warning("worker.task_failed", task_id=record.id, error=record.error)
        return record

    async def _record_malformed(self, error: SerializationError) -> TaskResult:
        """Record an unparseable entry as a failed task so it doesn't vanish silently."""
        self.stats.processed += 1
        self.stats.failed += 1
        task_id = error.task_id or str(uuid.uuid4())
        record = TaskResult(
            id=task_id,
            agent_type=self.agent_type,
            description=error.payload[:500] or "<empty payload>",
            status=TaskStatus.PROCESSING,
            started_at=utcnow(),
        )
        record.fail(str(error))
        await self.results.save(record)
        self._log.warning("worker.task_malformed", task_id=task_id, error=str(error))
        return record

    # ─── Notifications ───────────────────────────────────

    def _on_new_task(self, event: NewTaskEvent) -> None:
        """Log-only: progress is driven by the blocking pop, not by events."""
        self.stats.notifications += 1
        self._log.info(
            "worker.notification",
            task_id=event.task.id,
            description=event.task.description,
        )
