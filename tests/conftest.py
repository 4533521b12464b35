"""Test fixtures — presences backed by an in-memory Redis.

Learn: fakeredis implements the Redis protocol in-process, including
pub/sub and PUBSUB CHANNELS. Every client built from the same FakeServer
sees the same data, so two RedisPresence instances on one server behave
like two cluster nodes sharing one Redis.
"""

import asyncio

import pytest
import pytest_asyncio
from fakeredis import FakeAsyncRedis, FakeServer

from redis_presence import RedisPresence


def _client(server: FakeServer, decode_responses: bool = True) -> FakeAsyncRedis:
    return FakeAsyncRedis(server=server, decode_responses=decode_responses)


def make_presence(server: FakeServer) -> RedisPresence:
    return RedisPresence(
        _client(server),
        _client(server, decode_responses=False),
        listener_poll_interval=0.05,
        listener_error_delay=0.05,
    )


async def _wait_until(predicate, timeout: float = 2.0) -> None:
    """Poll predicate until it's truthy; fail the test on timeout."""
    async def _poll():
        while not predicate():
            await asyncio.sleep(0.01)

    await asyncio.wait_for(_poll(), timeout)


@pytest.fixture()
def wait_until():
    return _wait_until


@pytest.fixture()
def server():
    return FakeServer()


@pytest_asyncio.fixture()
async def presence(server):
    """A presence on the shared fake server, shut down after the test."""
    p = make_presence(server)
    try:
        yield p
    finally:
        await p.shutdown()


@pytest_asyncio.fixture()
async def other_node(server):
    """A second presence on the same server — another cluster node."""
    p = make_presence(server)
    try:
        yield p
    finally:
        await p.shutdown()
