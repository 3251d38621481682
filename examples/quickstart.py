#!/usr/bin/env python3
"""
agentqueue quickstart — dispatch → worker → result in one script.

Starts a data-agent worker in-process, dispatches three tasks (one of
which the handler rejects), waits for the results and prints them.

Run with: python examples/quickstart.py
Uses an in-memory broker by default; point it at Redis with
    AGENTQUEUE_REDIS_URL=redis://localhost:6379 python examples/quickstart.py
"""

import asyncio
import os
import sys

from agentqueue.agents import AgentType
from agentqueue.broker import create_broker
from agentqueue.dispatcher import Dispatcher
from agentqueue.handlers import default_handler
from agentqueue.log import configure_logging
from agentqueue.worker import AgentWorker, WorkerState


async def main() -> int:
    configure_logging("INFO")
    url = os.environ.get("AGENTQUEUE_REDIS_URL", "memory://")
    broker = create_broker(url)

    worker = AgentWorker(
        "Data Collection Agent",
        AgentType.DATA,
        default_handler(AgentType.DATA),
        broker,
        poll_timeout=1.0,
    )
    running = asyncio.create_task(worker.start())
    while worker.state != WorkerState.RUNNING:
        if running.done():
            running.result()  # startup failed, raise it
        await asyncio.sleep(0.05)

    # ── Dispatch ──────────────────────────────────────────────────
    print("\n1. Dispatching tasks...")
    d = Dispatcher(broker)
    tasks = [
        await d.dispatch(AgentType.DATA, "Scrape fixtures"),
        await d.dispatch(AgentType.DATA, "Scrape league table"),
        await d.dispatch(AgentType.DATA, "Make coffee"),
    ]
    for t in tasks:
        print(f"   {t.id[:8]}...  {t.description}")

    # ── Wait for results ──────────────────────────────────────────
    print("\n2. Waiting for results...")
    results = {}
    for _ in range(100):
        for t in tasks:
            if t.id not in results:
                record = await d.result(t.id)
                if record is not None:
                    results[t.id] = record
        if len(results) == len(tasks):
            break
        await asyncio.sleep(0.1)

    for t in tasks:
        record = results.get(t.id)
        if record is None:
            print(f"   {t.description:25s} → (no result)")
        elif record.error:
            print(f"   {t.description:25s} → {record.status.value}: {record.error}")
        else:
            print(f"   {t.description:25s} → {record.status.value}: {record.result}")

    # ── Status ────────────────────────────────────────────────────
    status = await d.status(AgentType.DATA)
    print(f"\n3. Agent status: {status.status.value}, last seen {status.last_seen}")

    await worker.stop()
    await running
    return 0 if len(results) == len(tasks) else 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
