"""Dispatcher — one-shot operations against the queues.

Learn: Unlike workers, dispatchers never loop. Each CLI invocation
connects, performs one operation (dispatch, status, list, clear,
result), disconnects and exits. Nothing is retried automatically.
"""

from agentqueue.dispatcher.service import Dispatcher

__all__ = ["Dispatcher"]
