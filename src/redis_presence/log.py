"""Structured logging setup.

Library code only ever calls structlog.get_logger() and emits dotted event
names (presence.subscribed, presence.callback_failed, ...). Applications
that embed the presence layer call configure_logging() once at startup,
or configure structlog themselves.
"""

import logging

import structlog

from redis_presence.config import Settings, settings


def configure_logging(config: Settings = settings) -> None:
    """Configure structlog from settings (console or JSON output)."""
    level = logging.getLevelName(config.log_level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level '{config.log_level}'")

    renderer = (
        structlog.processors.JSONRenderer()
        if config.log_json
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )
