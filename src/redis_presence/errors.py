"""Presence error types.

Store failures are not wrapped: whatever redis-py raises reaches the
caller unchanged. The only error this package raises itself is
PresenceClosedError, for operations attempted after shutdown().
"""

from redis.exceptions import ConnectionError as RedisConnectionError


class PresenceError(Exception):
    """Base class for errors raised by the presence layer."""


class PresenceClosedError(PresenceError, RedisConnectionError):
    """Operation attempted on a presence that has been shut down.

    Subclasses redis' ConnectionError so callers handling dropped
    connections handle this case too.
    """

    def __init__(self, message: str = "presence is shut down"):
        super().__init__(message)
