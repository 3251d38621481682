"""Built-in keyword-routing handlers.

These route a task's free-form description to an action name, the same
way the original per-agent scripts did, and return a small record of
what was requested. Real scraping/build work plugs in through
``agentqueue worker --handler package.module:function``.
"""

import re
from types import MappingProxyType
from typing import Any, Mapping

from agentqueue.agents import AgentType
from agentqueue.errors import HandlerError
from agentqueue.handlers.base import TaskHandler
from agentqueue.schemas.task import TaskDescriptor, utcnow


def handle_data_task(task: TaskDescriptor) -> dict[str, Any]:
    """Route data-collection instructions. Anything that isn't a scrape is rejected."""
    text = task.description.lower()
    if "scrape" not in text:
        raise HandlerError(f"Unknown task type: {task.description}")

    if "fixtures" in text or "matches" in text:
        action = "scrape_matches"
    elif "table" in text or "standings" in text:
        action = "scrape_standings"
    elif "players" in text or "stats" in text:
        action = "scrape_player_stats"
    else:
        action = "scrape_latest"

    return {"action": action, "timestamp": utcnow().isoformat()}


def handle_frontend_task(task: TaskDescriptor) -> dict[str, Any]:
    text = task.description.lower()

    if "component" in text:
        match = re.search(r"build\s+(\w+)\s+component", task.description, re.IGNORECASE)
        name = match.group(1) if match else "NewComponent"
        base = f"packages/ui/src/components/{name}/{name}"
        return {
            "type": "component",
            "name": name,
            "files": [f"{base}.tsx"],
            "tests": [f"{base}.test.tsx"],
            "storybook": [f"{base}.stories.tsx"],
        }
    if "page" in text:
        match = re.search(r"build\s+(\w+)\s+page", task.description, re.IGNORECASE)
        name = match.group(1) if match else "NewPage"
        return {
            "type": "page",
            "name": name,
            "files": [f"apps/web/src/pages/{name}.tsx"],
            "route": f"/{name.lower()}",
        }
    if "fix" in text or "bug" in text:
        return {"type": "bugfix", "description": task.description}
    if "test" in text:
        return {"type": "test", "description": task.description}
    if "style" in text or "css" in text:
        return {"type": "style", "description": task.description}
    return handle_generic_task(task)


def handle_generic_task(task: TaskDescriptor) -> dict[str, Any]:
    """Acknowledge the task — used for agent types with no dedicated handler."""
    return {
        "type": "generic",
        "agentType": task.agent_type.value,
        "description": task.description,
    }


BUILTIN_HANDLERS: Mapping[AgentType, TaskHandler] = MappingProxyType({
    AgentType.DATA: handle_data_task,
    AgentType.FRONTEND: handle_frontend_task,
})


def default_handler(agent_type: AgentType) -> TaskHandler:
    return BUILTIN_HANDLERS.get(agent_type, handle_generic_task)
