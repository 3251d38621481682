from agentqueue.handlers.base import TaskHandler, call_handler, load_handler
from agentqueue.handlers.builtin import default_handler

__all__ = ["TaskHandler", "call_handler", "default_handler", "load_handler"]
