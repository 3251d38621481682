"""Worker entry point — run one agent worker as a process.

Learn: SIGINT/SIGTERM go through the worker's normal stop sequence, so
the agent is marked offline before the process exits. The loop gets
``shutdown_grace_seconds`` to finish the task in hand (a blocking pop
ends within poll_timeout); after that the loop is cancelled and the
stop sequence still runs.

Usage:
    agentqueue worker data
    agentqueue worker frontend --handler mypkg.handlers:build
"""

import asyncio
import signal
from typing import Optional

import structlog

from agentqueue.worker.agent_worker import AgentWorker

logger = structlog.get_logger()


async def run_worker(
    worker: AgentWorker,
    grace_seconds: float,
    stop_event: Optional[asyncio.Event] = None,
) -> None:
    """Run ``worker`` until it stops on its own or ``stop_event``/a signal fires."""
    stop_event = stop_event or asyncio.Event()
    loop = asyncio.get_running_loop()

    def on_signal(sig: signal.Signals) -> None:
        logger.info("worker.signal_received", signal=sig.name)
        stop_event.set()

    installed = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, on_signal, sig)
            installed.append(sig)
        except (NotImplementedError, RuntimeError):
            # No loop signal support here (Windows, or not the main thread)
            logger.debug("worker.signal_handler_unavailable", signal=sig.name)

    serving = asyncio.create_task(worker.start())
    waiting = asyncio.create_task(stop_event.wait())
    try:
        done, _ = await asyncio.wait({serving, waiting}, return_when=asyncio.FIRST_COMPLETED)
        if serving in done:
            # Ended without a stop request: surface startup errors
            serving.result()
            return

        worker.request_stop()
        try:
            await asyncio.wait_for(asyncio.shield(serving), timeout=grace_seconds)
        except asyncio.TimeoutError:
            logger.warning("worker.grace_period_exceeded", grace_seconds=grace_seconds)
            serving.cancel()
            try:
                await serving
            except asyncio.CancelledError:
                pass
    finally:
        waiting.cancel()
        for sig in installed:
            loop.remove_signal_handler(sig)
