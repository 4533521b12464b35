"""LocalPresence tests — the in-process backend honours the same contract."""

import pytest
from redis.exceptions import ResponseError

from redis_presence import LocalPresence, Presence, PresenceClosedError


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def local(clock):
    return LocalPresence(clock=clock)


def test_is_a_presence(local):
    assert isinstance(local, Presence)


@pytest.mark.asyncio
async def test_setex_expires(local, clock):
    await local.setex("owner", "node-a", 10)
    assert await local.get("owner") == "node-a"

    clock.now += 10
    assert await local.get("owner") is None


@pytest.mark.asyncio
async def test_setex_rejects_non_positive_ttl(local):
    with pytest.raises(ResponseError):
        await local.setex("owner", "node-a", 0)


@pytest.mark.asyncio
async def test_counters(local):
    assert await local.incr("clients") == 1
    assert await local.incr("clients") == 2
    assert await local.decr("clients") == 1
    assert await local.get("clients") == "1"

    await local.setex("word", "abc", 10)
    with pytest.raises(ResponseError):
        await local.incr("word")


@pytest.mark.asyncio
async def test_sets(local):
    await local.sadd("rooms", "a")
    await local.sadd("rooms", "a")
    await local.sadd("rooms", "b")
    await local.sadd("ranked", "b")

    assert await local.scard("rooms") == 2
    assert await local.sismember("rooms", "a") is True
    assert await local.sinter("rooms", "ranked") == {"b"}
    assert await local.sinter("rooms") == {"a", "b"}
    assert await local.sinter() == set()

    await local.srem("rooms", "a")
    await local.srem("rooms", "b")
    assert await local.smembers("rooms") == set()
    assert await local.sismember("rooms", "a") is False


@pytest.mark.asyncio
async def test_wrong_type(local):
    await local.sadd("rooms", "a")
    with pytest.raises(ResponseError):
        await local.hget("rooms", "field")


@pytest.mark.asyncio
async def test_hashes(local):
    assert await local.hincrby("room:1", "clients", 5) == 5
    assert await local.hincrby("room:1", "clients", 4) == 9
    await local.hset("room:1", "owner", "node-a")

    assert await local.hget("room:1", "owner") == "node-a"
    assert await local.hgetall("room:1") == {"clients": "9", "owner": "node-a"}
    assert await local.hlen("room:1") == 2

    await local.hdel("room:1", "clients")
    await local.hdel("room:1", "owner")
    assert await local.hgetall("room:1") == {}
    assert await local.hlen("room:1") == 0


@pytest.mark.asyncio
async def test_publish_dispatches_in_order(local):
    calls = []

    def broken(data):
        raise RuntimeError("boom")

    await local.subscribe("room:1", lambda data: calls.append(("first", data)))
    await local.subscribe("room:1", broken)
    await local.subscribe("room:1", lambda data: calls.append(("third", data)))

    await local.publish("room:1", {"n": 1})
    await local.publish("room:1")

    assert calls == [
        ("first", {"n": 1}),
        ("third", {"n": 1}),
        ("first", False),
        ("third", False),
    ]


@pytest.mark.asyncio
async def test_exists_follows_subscriptions(local):
    callback = lambda data: None  # noqa: E731
    assert await local.exists("room:1") is False

    subscription = await local.subscribe("room:1", callback)
    assert await local.exists("room:1") is True

    await subscription.unsubscribe()
    assert await local.exists("room:1") is False
    await local.unsubscribe("room:1", callback)


@pytest.mark.asyncio
async def test_shutdown(local):
    await local.subscribe("room:1", lambda data: None)
    await local.shutdown()
    await local.shutdown()

    with pytest.raises(PresenceClosedError):
        await local.get("key")
    with pytest.raises(PresenceClosedError):
        await local.publish("room:1")
    with pytest.raises(PresenceClosedError):
        await local.sinter()
