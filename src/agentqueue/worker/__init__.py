"""Agent worker — consumes one agent type's queue until stopped.

Learn: Workers are separate OS processes, one per agent type (run more
than one for the same type to scale out; BLPOP hands each task to only
one of them). Start one with:

    agentqueue worker data
"""

from agentqueue.worker.agent_worker import AgentWorker, WorkerState, WorkerStats

__all__ = ["AgentWorker", "WorkerState", "WorkerStats"]
