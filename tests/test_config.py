"""Settings and logging setup tests."""

import pytest
import structlog
from pydantic import ValidationError

from redis_presence.config import Settings
from redis_presence.log import configure_logging


def test_defaults():
    config = Settings()
    assert config.redis_url.startswith("redis://")
    assert config.listener_poll_interval > 0
    assert config.redis_options() == {"health_check_interval": 0}


def test_env_prefix(monkeypatch):
    monkeypatch.setenv("PRESENCE_REDIS_URL", "rediss://cache:6380/1")
    monkeypatch.setenv("PRESENCE_SOCKET_CONNECT_TIMEOUT", "2.5")

    config = Settings()

    assert config.redis_url == "rediss://cache:6380/1"
    assert config.redis_options()["socket_connect_timeout"] == 2.5


def test_rejects_unknown_scheme():
    with pytest.raises(ValidationError):
        Settings(redis_url="http://localhost:6379")


def test_rejects_non_positive_poll_interval():
    with pytest.raises(ValidationError):
        Settings(listener_poll_interval=0)


def test_configure_logging():
    try:
        configure_logging(Settings(log_level="debug", log_json=True))
        with pytest.raises(ValueError):
            configure_logging(Settings(log_level="loud"))
    finally:
        structlog.reset_defaults()
