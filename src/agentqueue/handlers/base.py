"""Task handler protocol and loading.

Learn: A handler is the domain logic a worker runs for each task. It's
any callable taking a TaskDescriptor — sync or async — that returns a
JSON-serialisable result. Raising anything marks the task failed with
str(exception) as the error message; the worker keeps going.

Handlers are not time-boxed: a handler that never returns blocks its
worker for good.
"""

import importlib
import inspect
from typing import Any, Awaitable, Callable, Union

from agentqueue.schemas.task import TaskDescriptor

TaskHandler = Callable[[TaskDescriptor], Union[Any, Awaitable[Any]]]


async def call_handler(handler: TaskHandler, descriptor: TaskDescriptor) -> Any:
    outcome = handler(descriptor)
    if inspect.isawaitable(outcome):
        outcome = await outcome
    return outcome


def load_handler(path: str) -> TaskHandler:
    """Import a handler from ``package.module:function``."""
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Handler must look like 'package.module:function', got {path!r}")
    module = importlib.import_module(module_name)
    try:
        handler = getattr(module, attr)
    except AttributeError:
        raise ValueError(f"Module {module_name!r} has no attribute {attr!r}") from None
    if not callable(handler):
        raise ValueError(f"{path!r} is not callable")
    return handler
