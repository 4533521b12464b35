"""Subscription multiplexer — many logical subscribers, one Redis channel.

Learn: a Redis connection in subscribed mode can't run ordinary commands,
and every SUBSCRIBE on it shares one inbound message stream. So one
connection is dedicated to notifications, and this module sits on it:

1. A table maps topic → ordered list of callbacks
2. The first callback for a topic triggers SUBSCRIBE, the last one
   removed triggers UNSUBSCRIBE — Redis' subscription set always equals
   the set of topics with callbacks
3. One listener task reads the stream and fans each message out to the
   topic's callbacks, one at a time, in registration order

The listener is started by the first SUBSCRIBE and runs until close().
It is never stopped when the last topic goes away: a message published
just before an UNSUBSCRIBE can still be in flight, and it has to land
somewhere (it is dropped, since no callbacks are left).
"""

import asyncio
import inspect
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Union

import structlog
from redis.asyncio.client import PubSub

from redis_presence.codec import decode_payload
from redis_presence.errors import PresenceClosedError

logger = structlog.get_logger()

Callback = Callable[[Any], Union[None, Awaitable[None]]]


@dataclass
class Subscription:
    """Handle returned by subscribe() — one callback on one topic."""

    topic: str
    callback: Callback
    owner: Any = field(repr=False, compare=False)

    async def unsubscribe(self) -> None:
        """Remove exactly this registration."""
        await self.owner.unsubscribe(self.topic, self.callback)


def _callback_name(callback: Callback) -> str:
    return getattr(callback, "__qualname__", None) or repr(callback)


def _text(value: Union[str, bytes]) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else value


class SubscriptionTable:
    """Topic → ordered callback list, with per-callback isolated dispatch.

    An entry exists only while it has at least one callback. add() and
    remove() report the empty ↔ non-empty transitions so the owner can
    mirror them onto the store.
    """

    def __init__(self) -> None:
        self._callbacks: dict[str, list[Callback]] = {}

    def __contains__(self, topic: str) -> bool:
        return topic in self._callbacks

    def topics(self) -> set[str]:
        return set(self._callbacks)

    def callbacks(self, topic: str) -> list[Callback]:
        return list(self._callbacks.get(topic, ()))

    def add(self, topic: str, callback: Callback) -> bool:
        """Register callback. Returns True if it is the topic's first."""
        callbacks = self._callbacks.setdefault(topic, [])
        callbacks.append(callback)
        return len(callbacks) == 1

    def remove(self, topic: str, callback: Optional[Callback] = None) -> bool:
        """Remove one callback (or all of them if None).

        Only the first matching occurrence goes. Unknown topics and
        callbacks are ignored. Returns True if the topic's entry was
        deleted by this call.
        """
        callbacks = self._callbacks.get(topic)
        if callbacks is None:
            return False

        if callback is None:
            callbacks.clear()
        else:
            try:
                callbacks.remove(callback)
            except ValueError:
                return False

        if callbacks:
            return False
        del self._callbacks[topic]
        return True

    def clear(self) -> None:
        self._callbacks.clear()

    async def dispatch(self, topic: str, data: Any) -> int:
        """Invoke every callback for topic, in order. Returns how many ran.

        The list is copied first, so callbacks may unsubscribe themselves
        or each other mid-dispatch. A failing callback is logged and the
        next one still runs. Coroutine callbacks are awaited before the
        next callback starts.
        """
        callbacks = self.callbacks(topic)
        for callback in callbacks:
            try:
                result = callback(data)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    "presence.callback_failed",
                    topic=topic,
                    callback=_callback_name(callback),
                )
        return len(callbacks)


def _fail(future: asyncio.Future, error: BaseException) -> None:
    if not future.done():
        future.set_exception(error)
        future.exception()  # mark retrieved; awaiting waiters still raise


class SubscriptionMultiplexer:
    """Owns the notification connection and its single listener task."""

    def __init__(
        self,
        pubsub: PubSub,
        *,
        poll_interval: float = 1.0,
        error_delay: float = 1.0,
    ):
        self._pubsub = pubsub
        self._table = SubscriptionTable()
        self._pending_acks: dict[str, deque[asyncio.Future]] = {}
        self._listener: Optional[asyncio.Task] = None
        self._poll_interval = poll_interval
        self._error_delay = error_delay
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def listening(self) -> bool:
        return self._listener is not None and not self._listener.done()

    def topics(self) -> set[str]:
        """Topics with at least one callback (== Redis subscription set)."""
        return self._table.topics()

    def callbacks(self, topic: str) -> list[Callback]:
        return self._table.callbacks(topic)

    # ─── Subscribe / unsubscribe ──────────────────────────

    async def subscribe(self, topic: str, callback: Callback) -> None:
        """Register callback; SUBSCRIBE if it's the topic's first.

        Returns once Redis has confirmed the subscription, so a publish
        issued afterwards is deliverable.
        """
        if self._closed:
            raise PresenceClosedError()

        if not self._table.add(topic, callback):
            # Topic already live, or its latest SUBSCRIBE is unconfirmed.
            # A failed SUBSCRIBE clears the whole topic, this callback too.
            pending = self._pending_acks.get(topic)
            if pending:
                await asyncio.shield(pending[-1])
            return

        ack = asyncio.get_running_loop().create_future()
        self._pending_acks.setdefault(topic, deque()).append(ack)
        try:
            await self._pubsub.subscribe(topic)
            self._ensure_listener()
        except Exception as e:
            # Nothing reached Redis — undo every registration waiting on it
            if self._forget_ack(topic, ack):
                self._table.remove(topic)
            _fail(ack, e)
            raise

        await asyncio.shield(ack)
        logger.debug("presence.subscribed", topic=topic)

    def _forget_ack(self, topic: str, ack: asyncio.Future) -> bool:
        """Drop ack from the topic's queue. True if it was the newest one."""
        pending = self._pending_acks.get(topic)
        if not pending or ack not in pending:
            return False
        newest = pending[-1] is ack
        pending.remove(ack)
        if not pending:
            del self._pending_acks[topic]
        return newest

    async def unsubscribe(self, topic: str, callback: Optional[Callback] = None) -> None:
        """Remove callback (or all); UNSUBSCRIBE when none are left."""
        if not self._table.remove(topic, callback):
            return

        await self._pubsub.unsubscribe(topic)
        logger.debug("presence.unsubscribed", topic=topic)

    # ─── Listener ─────────────────────────────────────────

    def _ensure_listener(self) -> None:
        if self._listener is None:
            self._listener = asyncio.create_task(self._listen())

    async def _listen(self) -> None:
        """Read the notification stream until close()."""
        logger.info("presence.listener_started")
        while not self._closed:
            try:
                message = await self._pubsub.get_message(timeout=self._poll_interval)
            except Exception:
                if self._closed:
                    break
                logger.exception("presence.listener_error", retry_in=self._error_delay)
                await asyncio.sleep(self._error_delay)
                continue

            if message is not None:
                await self._handle(message)
        logger.info("presence.listener_stopped")

    async def _handle(self, message: dict) -> None:
        kind = _text(message["type"])
        topic = _text(message["channel"])

        if kind == "subscribe":
            # Confirmations arrive in the order the SUBSCRIBEs were sent
            pending = self._pending_acks.get(topic)
            if pending:
                ack = pending.popleft()
                if not pending:
                    del self._pending_acks[topic]
                if not ack.done():
                    ack.set_result(None)
            return
        if kind != "message" or topic not in self._table:
            return

        try:
            data = decode_payload(message["data"])
        except ValueError:
            logger.warning("presence.decode_failed", topic=topic, exc_info=True)
            return

        await self._table.dispatch(topic, data)

    # ─── Lifecycle ────────────────────────────────────────

    async def close(self) -> None:
        """Stop the listener and close the notification connection.

        Pending subscribe() calls fail with PresenceClosedError. Errors
        from closing the connection are logged, not raised.
        """
        if self._closed:
            return
        self._closed = True
        self._table.clear()

        for pending in self._pending_acks.values():
            for ack in pending:
                _fail(ack, PresenceClosedError())
        self._pending_acks.clear()

        listener, self._listener = self._listener, None
        if listener is not None and listener is not asyncio.current_task():
            listener.cancel()
            try:
                await listener
            except asyncio.CancelledError:
                pass

        try:
            await self._pubsub.aclose()
        except Exception:
            logger.warning("presence.pubsub_close_failed", exc_info=True)
