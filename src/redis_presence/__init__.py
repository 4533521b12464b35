"""redis-presence — shared presence and pub/sub for clustered servers.

Lets many stateless server processes agree on which rooms exist, who
owns them and how many participants are active, by sharing sets,
hashes, counters and expiring keys in one Redis, and by multiplexing any
number of topic subscriptions over a single pub/sub connection.
"""

from redis_presence.base import Presence
from redis_presence.codec import MISSING
from redis_presence.errors import PresenceClosedError, PresenceError
from redis_presence.local import LocalPresence
from redis_presence.multiplexer import Subscription
from redis_presence.presence import RedisPresence

__version__ = "0.1.0"

__all__ = [
    "LocalPresence",
    "MISSING",
    "Presence",
    "PresenceClosedError",
    "PresenceError",
    "RedisPresence",
    "Subscription",
]
