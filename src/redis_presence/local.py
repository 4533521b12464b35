"""In-process presence — the same contract as RedisPresence, no Redis.

Learn: a single-node deployment (or a test) doesn't need a shared store,
but room logic shouldn't care. LocalPresence keeps the data in dicts and
mimics the Redis semantics room logic relies on:

- Keys expire lazily: an expired key is dropped the next time it's read
- Removing the last set member / hash field deletes the key
- Counters are stored as strings, like Redis, and INCR on a non-integer
  raises the same ResponseError Redis would
- publish() round-trips the payload through JSON, so callbacks receive
  exactly what they'd receive from Redis
"""

import time
from typing import Any, Optional

import structlog
from redis.exceptions import ResponseError

from redis_presence.base import Presence
from redis_presence.codec import MISSING, decode_payload, encode_payload
from redis_presence.errors import PresenceClosedError
from redis_presence.multiplexer import Callback, Subscription, SubscriptionTable

logger = structlog.get_logger()

_WRONGTYPE = "WRONGTYPE Operation against a key holding the wrong kind of value"
_NOT_INTEGER = "value is not an integer or out of range"


class LocalPresence(Presence):
    """Presence for a single process."""

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._data: dict[str, Any] = {}
        self._expires: dict[str, float] = {}
        self._table = SubscriptionTable()
        self._closed = False

    def _ensure_open(self) -> None:
        if self._closed:
            raise PresenceClosedError()

    def _lookup(self, key: str, kind: type) -> Any:
        self._ensure_open()
        deadline = self._expires.get(key)
        if deadline is not None and deadline <= self._clock():
            self._remove(key)
        value = self._data.get(key)
        if value is not None and not isinstance(value, kind):
            raise ResponseError(_WRONGTYPE)
        return value

    def _remove(self, key: str) -> None:
        self._data.pop(key, None)
        self._expires.pop(key, None)

    def _store(self, key: str, value: Any) -> None:
        self._data[key] = value
        self._expires.pop(key, None)

    # ─── Pub/sub ──────────────────────────────────────────

    async def subscribe(self, topic: str, callback: Callback) -> Subscription:
        self._ensure_open()
        self._table.add(topic, callback)
        return Subscription(topic, callback, self)

    async def unsubscribe(self, topic: str, callback: Optional[Callback] = None) -> None:
        self._table.remove(topic, callback)

    async def publish(self, topic: str, data: Any = MISSING) -> None:
        self._ensure_open()
        if topic in self._table:
            await self._table.dispatch(topic, decode_payload(encode_payload(data)))

    async def exists(self, topic: str) -> bool:
        self._ensure_open()
        return topic in self._table

    # ─── Keys ─────────────────────────────────────────────

    async def setex(self, key: str, value: str, seconds: int) -> None:
        self._ensure_open()
        if seconds <= 0:
            raise ResponseError("invalid expire time in 'setex' command")
        self._data[key] = str(value)
        self._expires[key] = self._clock() + seconds

    async def get(self, key: str) -> Optional[str]:
        return self._lookup(key, str)

    async def delete(self, key: str) -> None:
        self._ensure_open()
        self._remove(key)

    async def _add_to_counter(self, key: str, amount: int) -> int:
        current = self._lookup(key, str)
        try:
            value = int(current or 0) + amount
        except ValueError:
            raise ResponseError(_NOT_INTEGER) from None
        self._data[key] = str(value)
        return value

    async def incr(self, key: str) -> int:
        return await self._add_to_counter(key, 1)

    async def decr(self, key: str) -> int:
        return await self._add_to_counter(key, -1)

    # ─── Sets ─────────────────────────────────────────────

    async def sadd(self, key: str, member: str) -> None:
        members = self._lookup(key, set)
        if members is None:
            self._store(key, {str(member)})
        else:
            members.add(str(member))

    async def smembers(self, key: str) -> set[str]:
        return set(self._lookup(key, set) or ())

    async def sismember(self, key: str, member: str) -> bool:
        return str(member) in (self._lookup(key, set) or ())

    async def srem(self, key: str, member: str) -> None:
        members = self._lookup(key, set)
        if members is None:
            return
        members.discard(str(member))
        if not members:
            self._remove(key)

    async def scard(self, key: str) -> int:
        return len(self._lookup(key, set) or ())

    async def sinter(self, *keys: str) -> set[str]:
        self._ensure_open()
        if not keys:
            return set()
        result = set(self._lookup(keys[0], set) or ())
        for key in keys[1:]:
            result &= self._lookup(key, set) or set()
        return result

    # ─── Hashes ───────────────────────────────────────────

    async def hset(self, key: str, field: str, value: str) -> None:
        fields = self._lookup(key, dict)
        if fields is None:
            fields = {}
            self._store(key, fields)
        fields[field] = str(value)

    async def hincrby(self, key: str, field: str, amount: int) -> int:
        fields = self._lookup(key, dict)
        if fields is None:
            fields = {}
            self._store(key, fields)
        try:
            value = int(fields.get(field, 0)) + amount
        except ValueError:
            raise ResponseError("hash value is not an integer") from None
        fields[field] = str(value)
        return value

    async def hget(self, key: str, field: str) -> Optional[str]:
        return (self._lookup(key, dict) or {}).get(field)

    async def hgetall(self, key: str) -> dict[str, str]:
        return dict(self._lookup(key, dict) or {})

    async def hdel(self, key: str, field: str) -> None:
        fields = self._lookup(key, dict)
        if fields is None:
            return
        fields.pop(field, None)
        if not fields:
            self._remove(key)

    async def hlen(self, key: str) -> int:
        return len(self._lookup(key, dict) or {})

    # ─── Lifecycle ────────────────────────────────────────

    async def shutdown(self) -> None:
        if self._closed:
            return
        self._closed = True
        logger.info("presence.shutdown", topics=len(self._table.topics()))
        self._table.clear()
        self._data.clear()
        self._expires.clear()
