"""Presence configuration via environment variables.

Uses pydantic-settings to load config from env vars with PRESENCE_ prefix.
No YAML files, no file-based config — just env vars (12-factor app style).

Learn: every server node in the cluster points at the same Redis, so the
URL is the only setting most deployments touch. The listener knobs only
matter when tuning shutdown latency or behaviour during Redis outages.
"""

from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings

_REDIS_SCHEMES = ("redis://", "rediss://", "unix://")


class Settings(BaseSettings):
    """All presence configuration. Set via PRESENCE_* env vars."""

    # Redis
    redis_url: str = "redis://localhost:6379/0"
    socket_timeout: Optional[float] = None
    socket_connect_timeout: Optional[float] = None
    health_check_interval: int = 0  # seconds, 0 disables

    # Subscription listener
    listener_poll_interval: float = 1.0  # max seconds one read blocks
    listener_error_delay: float = 1.0  # pause after a failed read

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    model_config = {"env_prefix": "PRESENCE_"}

    @model_validator(mode="after")
    def validate_settings(self):
        """Reject URLs redis-py can't connect to and non-positive intervals."""
        if not self.redis_url.startswith(_REDIS_SCHEMES):
            raise ValueError(
                "PRESENCE_REDIS_URL must start with one of: "
                + ", ".join(_REDIS_SCHEMES)
            )
        if self.listener_poll_interval <= 0:
            raise ValueError("PRESENCE_LISTENER_POLL_INTERVAL must be positive")
        if self.listener_error_delay < 0:
            raise ValueError("PRESENCE_LISTENER_ERROR_DELAY must not be negative")
        return self

    def redis_options(self) -> dict:
        """Keyword arguments for redis.asyncio.from_url()."""
        options: dict = {"health_check_interval": self.health_check_interval}
        if self.socket_timeout is not None:
            options["socket_timeout"] = self.socket_timeout
        if self.socket_connect_timeout is not None:
            options["socket_connect_timeout"] = self.socket_connect_timeout
        return options


# Singleton — import this everywhere
settings = Settings()
