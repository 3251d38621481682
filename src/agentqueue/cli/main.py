"""agentqueue CLI — dispatch tasks, inspect queues, run workers.

Usage:
    agentqueue dispatch data "Scrape fixtures" -p high   # Enqueue a task
    agentqueue status                                  # All agents + queue lengths
    agentqueue status data                             # One agent, with last-seen
    agentqueue list [data] --limit 5                   # Peek at pending tasks
    agentqueue clear [data]                            # Drop pending tasks
    agentqueue result <task-id>                        # Stored outcome of a task
    agentqueue worker data                             # Run a worker process

Shortcuts:
    agentqueue scrape fixtures          # → data: "Scrape fixtures"
    agentqueue build-ui Header          # → frontend: "Build Header component"
    agentqueue api standings            # → backend: "Create standings endpoint"

Every dispatcher command is one-shot: connect, one operation, disconnect.
Exit code 0 on success, 1 on any broker failure.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import sys
from typing import Optional

import click

from agentqueue import __version__
from agentqueue.agents import AGENT_NAMES, AgentType, display_name, resolve_agent_type
from agentqueue.broker import create_broker
from agentqueue.config import settings
from agentqueue.dispatcher import Dispatcher
from agentqueue.errors import AgentQueueError, ConnectivityError, DispatchError
from agentqueue.handlers import default_handler, load_handler
from agentqueue.log import configure_logging
from agentqueue.schemas.task import Priority
from agentqueue.worker import AgentWorker
from agentqueue.worker.main import run_worker

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

AGENT_CHOICE = click.Choice([a.value for a in AgentType], case_sensitive=False)
PRIORITY_CHOICE = click.Choice([p.value for p in Priority], case_sensitive=False)


def _run(coro):
    """Run an async coroutine from synchronous Click handler.

    Handles nested event loops (e.g. when invoked via Click CliRunner
    inside an existing async context like tests) by offloading to a thread.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        # No running loop: normal CLI invocation
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


def _run_command(coro, failure: str):
    """Run a dispatcher coroutine; report AgentQueueError and exit 1."""
    try:
        return _run(coro)
    except AgentQueueError as e:
        click.secho(f"✗ {failure}", fg="red", err=True)
        click.echo(f"  {e}", err=True)
        sys.exit(1)


def _dispatcher() -> Dispatcher:
    try:
        broker = create_broker(settings.redis_url)
    except ValueError as e:
        raise DispatchError(str(e)) from e
    return Dispatcher.from_settings(broker, settings)


def _agent(value: Optional[str]) -> Optional[AgentType]:
    return resolve_agent_type(value) if value else None


def _parse_meta(ctx, param, values: tuple[str, ...]) -> dict[str, str]:
    metadata = {}
    for item in values:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got {item!r}")
        metadata[key] = value
    return metadata


def _status_color(status: str) -> str:
    """Map status strings to click colors."""
    colors = {
        "online": "green",
        "offline": "bright_black",
        "pending": "yellow",
        "processing": "cyan",
        "completed": "green",
        "failed": "red",
        "high": "red",
        "normal": "white",
        "low": "bright_black",
    }
    return colors.get(status, "white")


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="agentqueue")
def main():
    """agentqueue — dispatch tasks to agent workers and inspect their queues."""


# ---------------------------------------------------------------------------
# agentqueue dispatch
# ---------------------------------------------------------------------------


@main.command()
@click.argument("agent_type", type=AGENT_CHOICE)
@click.argument("description")
@click.option("--priority", "-p", type=PRIORITY_CHOICE, default="normal", show_default=True,
              help="Task priority (informational, does not reorder the queue)")
@click.option("--meta", "-m", multiple=True, callback=_parse_meta, metavar="KEY=VALUE",
              help="Attach metadata to the task (repeatable)")
def dispatch(agent_type: str, description: str, priority: str, meta: dict[str, str]):
    """Dispatch a task to an agent's queue.

    DESCRIPTION is the instruction the agent's handler receives.
    """
    _run_command(_dispatch_impl(agent_type, description, priority, meta), "Failed to dispatch task")


async def _dispatch_impl(agent_type: str, description: str, priority: str,
                         meta: Optional[dict[str, str]] = None):
    agent = resolve_agent_type(agent_type)
    async with _dispatcher() as d:
        task = await d.dispatch(agent, description, Priority(priority.lower()), meta or None)
    click.secho(f"✓ Task dispatched to {display_name(agent)}", fg="green")
    click.secho(f"Task ID: {task.id}", fg="bright_black")
    return task


# Kept for scripts written against the older command name
main.add_command(click.Command(
    name="task",
    params=dispatch.params,
    callback=dispatch.callback,
    help=dispatch.help,
    hidden=True,
))


# ---------------------------------------------------------------------------
# agentqueue status
# ---------------------------------------------------------------------------


@main.command()
@click.argument("agent_type", type=AGENT_CHOICE, required=False)
def status(agent_type: Optional[str]):
    """Show agent status and queue length (all agents, or one in detail)."""
    _run_command(_status_impl(_agent(agent_type)), "Failed to check status")


async def _status_impl(agent: Optional[AgentType]):
    async with _dispatcher() as d:
        if agent:
            record = await d.status(agent)
            click.secho(f"\n{display_name(agent)}:", bold=True)
            click.echo(f"  Status: {click.style(record.status.value, fg=_status_color(record.status.value))}")
            click.echo(f"  Queue: {record.queue_length} tasks")
            last_seen = record.last_seen.isoformat() if record.last_seen else "never"
            click.echo(f"  Last seen: {last_seen}")
            return

        records = await d.status_all()
    click.secho("\nAgent Status:\n", bold=True)
    for record in records:
        status_str = click.style(record.status.value, fg=_status_color(record.status.value))
        click.echo(f"{AGENT_NAMES[record.agent_type]}: {status_str} ({record.queue_length} tasks)")


# ---------------------------------------------------------------------------
# agentqueue list
# ---------------------------------------------------------------------------


@main.command("list")
@click.argument("agent_type", type=AGENT_CHOICE, required=False)
@click.option("--limit", "-l", type=click.IntRange(min=1), default=10, show_default=True,
              help="Number of tasks to show per queue")
def list_command(agent_type: Optional[str], limit: int):
    """List pending tasks without consuming them, next-to-run first."""
    _run_command(_list_impl(_agent(agent_type), limit), "Failed to list tasks")


async def _list_impl(agent: Optional[AgentType], limit: int):
    async with _dispatcher() as d:
        queues = await d.list_tasks(agent, limit)

    shown = 0
    for agent_type, tasks in queues.items():
        if not tasks:
            continue
        click.secho(f"\n{display_name(agent_type)} Tasks:\n", bold=True)
        for index, task in enumerate(tasks, start=1):
            click.echo(f"{index}. {task.description}")
            click.echo(f"   ID: {click.style(task.id, fg='bright_black')}")
            click.echo(f"   Priority: {click.style(task.priority.value, fg=_status_color(task.priority.value))}")
            click.echo(f"   Created: {click.style(task.created_at.isoformat(), fg='bright_black')}")
            click.echo()
            shown += 1

    if not shown:
        click.echo("No pending tasks.")


# ---------------------------------------------------------------------------
# agentqueue clear
# ---------------------------------------------------------------------------


@main.command()
@click.argument("agent_type", type=AGENT_CHOICE, required=False)
def clear(agent_type: Optional[str]):
    """Clear one task queue, or all of them."""
    _run_command(_clear_impl(_agent(agent_type)), "Failed to clear queue")


async def _clear_impl(agent: Optional[AgentType]):
    async with _dispatcher() as d:
        await d.clear(agent)
    if agent:
        click.secho(f"✓ Cleared {display_name(agent)} queue", fg="green")
    else:
        click.secho("✓ Cleared all queues", fg="green")


# ---------------------------------------------------------------------------
# agentqueue result
# ---------------------------------------------------------------------------


@main.command()
@click.argument("task_id")
def result(task_id: str):
    """Show the stored outcome of a task (kept for 24h by default)."""
    record = _run_command(_result_impl(task_id), "Failed to fetch result")
    if record is None:
        click.secho(f"✗ No result for task {task_id} (unknown, still pending, or expired)",
                    fg="red", err=True)
        sys.exit(1)

    click.echo(f"Status: {click.style(record.status.value, fg=_status_color(record.status.value))}")
    click.echo(json.dumps(json.loads(record.to_json()), indent=2))


async def _result_impl(task_id: str):
    async with _dispatcher() as d:
        return await d.result(task_id)


# ---------------------------------------------------------------------------
# Shortcuts
# ---------------------------------------------------------------------------


@main.command()
@click.argument("target")
@click.option("--priority", "-p", type=PRIORITY_CHOICE, default="normal")
def scrape(target: str, priority: str):
    """Scrape data (shortcut for the data agent)."""
    _run_command(_dispatch_impl("data", f"Scrape {target}", priority), "Failed to dispatch task")


@main.command("build-ui")
@click.argument("component")
@click.option("--priority", "-p", type=PRIORITY_CHOICE, default="normal")
def build_ui(component: str, priority: str):
    """Build a UI component (shortcut for the frontend agent)."""
    _run_command(_dispatch_impl("frontend", f"Build {component} component", priority),
                 "Failed to dispatch task")


@main.command()
@click.argument("endpoint")
@click.option("--priority", "-p", type=PRIORITY_CHOICE, default="normal")
def api(endpoint: str, priority: str):
    """Create an API endpoint (shortcut for the backend agent)."""
    _run_command(_dispatch_impl("backend", f"Create {endpoint} endpoint", priority),
                 "Failed to dispatch task")


# ---------------------------------------------------------------------------
# agentqueue worker
# ---------------------------------------------------------------------------


@main.command()
@click.argument("agent_type", type=AGENT_CHOICE)
@click.option("--handler", "handler_path", metavar="MODULE:FUNCTION",
              help="Task handler to run instead of the built-in one")
@click.option("--name", help="Worker name used in logs (defaults to the agent's name)")
def worker(agent_type: str, handler_path: Optional[str], name: Optional[str]):
    """Run a worker that processes AGENT_TYPE's queue until interrupted."""
    configure_logging(settings.log_level, settings.log_json)
    agent = resolve_agent_type(agent_type)

    try:
        handler = load_handler(handler_path) if handler_path else default_handler(agent)
    except (ImportError, ValueError) as e:
        raise click.BadParameter(str(e), param_hint="--handler") from e

    try:
        broker = create_broker(settings.redis_url)
    except ValueError as e:
        click.secho("✗ Invalid broker URL", fg="red", err=True)
        click.echo(f"  {e}", err=True)
        sys.exit(1)

    agent_worker = AgentWorker.from_settings(
        name or display_name(agent),
        agent,
        handler,
        broker,
        settings,
    )
    try:
        _run(run_worker(agent_worker, settings.shutdown_grace_seconds))
    except ConnectivityError as e:
        click.secho(f"✗ Failed to start {agent_worker.name}", fg="red", err=True)
        click.echo(f"  {e}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
