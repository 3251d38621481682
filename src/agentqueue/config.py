"""Process configuration via environment variables.

Uses pydantic-settings to load config from env vars with the AGENTQUEUE_
prefix. The broker URL is also read from a plain REDIS_URL so existing
deployments keep working without renaming anything.
"""

from typing import Literal

from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All worker and dispatcher configuration. Set via AGENTQUEUE_* env vars."""

    # Broker endpoint. redis:// or rediss:// for Redis, memory:// for in-process.
    redis_url: str = Field(
        default="redis://localhost:6379",
        validation_alias=AliasChoices("AGENTQUEUE_REDIS_URL", "REDIS_URL", "redis_url"),
    )

    # Worker loop
    poll_timeout_seconds: float = 5.0  # blocking pop timeout, also the heartbeat interval
    error_backoff_seconds: float = 5.0  # sleep after a broker error inside the loop
    shutdown_grace_seconds: float = 10.0  # how long a signalled worker may keep running

    # Results
    result_ttl_seconds: int = 86400  # 24h

    # "lifo" pushes and pops at the same end of the list, "fifo" pushes at the tail
    queue_order: Literal["lifo", "fifo"] = "lifo"

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    model_config = {"env_prefix": "AGENTQUEUE_", "populate_by_name": True}

    @model_validator(mode="after")
    def validate_intervals(self):
        """Reject intervals that would turn the worker loop into a busy spin."""
        for name in ("poll_timeout_seconds", "error_backoff_seconds", "result_ttl_seconds"):
            if getattr(self, name) <= 0:
                raise ValueError(f"AGENTQUEUE_{name.upper()} must be positive")
        if self.shutdown_grace_seconds < 0:
            raise ValueError("AGENTQUEUE_SHUTDOWN_GRACE_SECONDS must not be negative")
        return self


# Singleton, import this everywhere
settings = Settings()
