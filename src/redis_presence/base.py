"""Presence base — the interface room/session logic is written against.

Learn: room logic never talks to Redis directly. It depends on this
interface, and the process picks an implementation at startup:

- RedisPresence — shared across every node of a cluster
- LocalPresence — in-process only, for single-node setups and tests

Both honour the same contract: subscribe() returns once the topic is
live, callbacks run one at a time in registration order, publish() with
no payload delivers `False`, and every method raises
PresenceClosedError after shutdown().
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from redis_presence.codec import MISSING
from redis_presence.multiplexer import Callback, Subscription


class Presence(ABC):
    """Abstract base for presence backends."""

    # ─── Pub/sub ──────────────────────────────────────────

    @abstractmethod
    async def subscribe(self, topic: str, callback: Callback) -> Subscription:
        """Register callback for topic. Returns once the topic is live."""

    @abstractmethod
    async def unsubscribe(self, topic: str, callback: Optional[Callback] = None) -> None:
        """Remove one callback, or all of them. Unknown ones are ignored."""

    @abstractmethod
    async def publish(self, topic: str, data: Any = MISSING) -> None:
        """Send data to every subscriber of topic. No payload sends False."""

    @abstractmethod
    async def exists(self, topic: str) -> bool:
        """True iff at least one subscriber listens on exactly this topic."""

    # ─── Keys ─────────────────────────────────────────────

    @abstractmethod
    async def setex(self, key: str, value: str, seconds: int) -> None:
        """Set key to value, expiring after `seconds`."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Value of key, or None."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove key. Missing keys are fine."""

    @abstractmethod
    async def incr(self, key: str) -> int:
        """Add 1 to the counter at key (missing = 0). Returns the new value."""

    @abstractmethod
    async def decr(self, key: str) -> int:
        """Subtract 1 from the counter at key (missing = 0). Returns the new value."""

    # ─── Sets ─────────────────────────────────────────────

    @abstractmethod
    async def sadd(self, key: str, member: str) -> None:
        """Add member to the set at key."""

    @abstractmethod
    async def smembers(self, key: str) -> set[str]:
        """All members of the set at key."""

    @abstractmethod
    async def sismember(self, key: str, member: str) -> bool:
        """Whether member is in the set at key."""

    @abstractmethod
    async def srem(self, key: str, member: str) -> None:
        """Remove member from the set at key."""

    @abstractmethod
    async def scard(self, key: str) -> int:
        """Number of members in the set at key."""

    @abstractmethod
    async def sinter(self, *keys: str) -> set[str]:
        """Members present in every given set."""

    # ─── Hashes ───────────────────────────────────────────

    @abstractmethod
    async def hset(self, key: str, field: str, value: str) -> None:
        """Set one field of the hash at key."""

    @abstractmethod
    async def hincrby(self, key: str, field: str, amount: int) -> int:
        """Add amount to a hash field (missing = 0). Returns the new value."""

    @abstractmethod
    async def hget(self, key: str, field: str) -> Optional[str]:
        """One field of the hash at key, or None."""

    @abstractmethod
    async def hgetall(self, key: str) -> dict[str, str]:
        """Every field of the hash at key ({} if missing)."""

    @abstractmethod
    async def hdel(self, key: str, field: str) -> None:
        """Remove one field of the hash at key."""

    @abstractmethod
    async def hlen(self, key: str) -> int:
        """Number of fields in the hash at key."""

    # ─── Lifecycle ────────────────────────────────────────

    async def connect(self) -> None:
        """Verify the backend is reachable. No-op by default."""

    @abstractmethod
    async def shutdown(self) -> None:
        """Release connections. Later calls raise PresenceClosedError."""

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.shutdown()
