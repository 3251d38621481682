"""agentqueue — task dispatch for agent worker processes.

Dispatchers push task descriptors onto per-agent queues; long-running
workers pop them, run a handler, and persist the outcome with a TTL.
Liveness is tracked through status/heartbeat keys and new work is
announced on a best-effort pub/sub channel.
"""

__version__ = "0.1.0"
