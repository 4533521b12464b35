"""Redis presence — shared coordination state for a cluster of server nodes.

Learn: every node connects to the same Redis with two clients:
1. `pub` — ordinary commands: key/set/hash/counter ops and PUBLISH
2. `sub` — its pub/sub connection, owned by the SubscriptionMultiplexer

They're separate because a connection in subscribed mode refuses other
commands. Each primitive below is one round trip on `pub`; Redis errors
propagate unchanged and nothing is retried here. Retry policy belongs to
the caller (or to the redis-py client options).
"""

import re
from typing import Any, Optional

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError

from redis_presence.base import Presence
from redis_presence.codec import MISSING, encode_payload
from redis_presence.config import Settings, settings
from redis_presence.errors import PresenceClosedError
from redis_presence.multiplexer import Callback, Subscription, SubscriptionMultiplexer

logger = structlog.get_logger()

_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


def escape_glob(topic: str) -> str:
    """Escape Redis glob metacharacters so a pattern matches only `topic`."""
    return _GLOB_SPECIAL.sub(r"\\\1", topic)


class RedisPresence(Presence):
    """Presence backed by a shared Redis server."""

    def __init__(
        self,
        pub: aioredis.Redis,
        sub: aioredis.Redis,
        *,
        listener_poll_interval: float = 1.0,
        listener_error_delay: float = 1.0,
    ):
        self.pub = pub
        self.sub = sub
        self._subscriptions = SubscriptionMultiplexer(
            sub.pubsub(),
            poll_interval=listener_poll_interval,
            error_delay=listener_error_delay,
        )
        self._closed = False

    @classmethod
    def from_url(
        cls,
        url: str,
        *,
        listener_poll_interval: float = 1.0,
        listener_error_delay: float = 1.0,
        **redis_options: Any,
    ) -> "RedisPresence":
        """Open the connection pair against one Redis URL.

        The notification client keeps raw bytes: payloads are decoded by
        the multiplexer, so a malformed one is dropped on its own instead
        of failing the read.
        """
        redis_options.setdefault("encoding", "utf-8")
        redis_options.pop("decode_responses", None)
        return cls(
            aioredis.from_url(url, decode_responses=True, **redis_options),
            aioredis.from_url(url, decode_responses=False, **redis_options),
            listener_poll_interval=listener_poll_interval,
            listener_error_delay=listener_error_delay,
        )

    @classmethod
    def from_settings(cls, config: Settings = settings) -> "RedisPresence":
        return cls.from_url(
            config.redis_url,
            listener_poll_interval=config.listener_poll_interval,
            listener_error_delay=config.listener_error_delay,
            **config.redis_options(),
        )

    @property
    def _commands(self) -> aioredis.Redis:
        if self._closed:
            raise PresenceClosedError()
        return self.pub

    # ─── Pub/sub ──────────────────────────────────────────

    async def subscribe(self, topic: str, callback: Callback) -> Subscription:
        await self._subscriptions.subscribe(topic, callback)
        return Subscription(topic, callback, self)

    async def unsubscribe(self, topic: str, callback: Optional[Callback] = None) -> None:
        await self._subscriptions.unsubscribe(topic, callback)

    async def publish(self, topic: str, data: Any = MISSING) -> None:
        """Broadcast to every subscriber of topic, on any node.

        Fire-and-forget: no receiver count, no delivery guarantee.
        """
        await self._commands.publish(topic, encode_payload(data))

    async def exists(self, topic: str) -> bool:
        channels = await self._commands.pubsub_channels(escape_glob(topic))
        return topic in channels

    # ─── Keys ─────────────────────────────────────────────

    async def setex(self, key: str, value: str, seconds: int) -> None:
        await self._commands.setex(key, seconds, value)

    async def get(self, key: str) -> Optional[str]:
        return await self._commands.get(key)

    async def delete(self, key: str) -> None:
        await self._commands.delete(key)

    async def incr(self, key: str) -> int:
        return await self._commands.incr(key)

    async def decr(self, key: str) -> int:
        return await self._commands.decr(key)

    # ─── Sets ─────────────────────────────────────────────

    async def sadd(self, key: str, member: str) -> None:
        await self._commands.sadd(key, member)

    async def smembers(self, key: str) -> set[str]:
        return set(await self._commands.smembers(key))

    async def sismember(self, key: str, member: str) -> bool:
        return bool(await self._commands.sismember(key, member))

    async def srem(self, key: str, member: str) -> None:
        await self._commands.srem(key, member)

    async def scard(self, key: str) -> int:
        return await self._commands.scard(key)

    async def sinter(self, *keys: str) -> set[str]:
        """Members common to every set. No keys → empty set."""
        if not keys:
            if self._closed:
                raise PresenceClosedError()
            return set()
        return set(await self._commands.sinter(*keys))

    # ─── Hashes ───────────────────────────────────────────

    async def hset(self, key: str, field: str, value: str) -> None:
        await self._commands.hset(key, field, value)

    async def hincrby(self, key: str, field: str, amount: int) -> int:
        return await self._commands.hincrby(key, field, amount)

    async def hget(self, key: str, field: str) -> Optional[str]:
        return await self._commands.hget(key, field)

    async def hgetall(self, key: str) -> dict[str, str]:
        return dict(await self._commands.hgetall(key))

    async def hdel(self, key: str, field: str) -> None:
        await self._commands.hdel(key, field)

    async def hlen(self, key: str) -> int:
        return await self._commands.hlen(key)

    # ─── Lifecycle ────────────────────────────────────────

    async def connect(self) -> None:
        """PING both connections so a bad URL fails at startup."""
        await self._commands.ping()
        await self.sub.ping()
        logger.info("presence.connected")

    async def shutdown(self) -> None:
        """Close both connections. Safe to call more than once.

        In-flight commands may fail with a connection error; that's
        expected. Later calls raise PresenceClosedError.
        """
        if self._closed:
            return
        self._closed = True
        logger.info("presence.shutdown", topics=len(self._subscriptions.topics()))

        await self._subscriptions.close()
        for client in (self.sub, self.pub):
            try:
                await client.aclose()
            except (RedisError, OSError):
                logger.warning("presence.close_failed", exc_info=True)
