"""Broadcast channels — hot fan-out to every active subscriber.

A channel keeps no value. emit() with nobody subscribed discards the value;
a subscriber added later never sees it. Each subscriber gets its own
OverflowBuffer and its own delivery task, so a slow subscriber is handled
per the channel's overflow policy without affecting the others' order.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Callable, Generic, TypeVar

from flowx.buffer import OverflowBuffer, OverflowPolicy, check_capacity
from flowx.sequence import ColdSequence, Emit, _invoke
from flowx.subscription import ErrorHandler, Subscription

T = TypeVar("T")

logger = logging.getLogger("flowx.channel")


class ChannelClosedError(RuntimeError):
    """emit() on a channel that was closed."""


class BroadcastChannel(Generic[T]):
    """Deliver each emitted value to every currently-active subscriber."""

    def __init__(
        self,
        *,
        capacity: int = 0,
        overflow: OverflowPolicy = OverflowPolicy.SUSPEND,
        name: str = "channel",
    ) -> None:
        check_capacity(capacity, overflow)
        self._capacity = capacity
        self._overflow = overflow
        self._name = name
        self._connections: list[OverflowBuffer[T]] = []
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._connections)

    # --- Emit ---

    async def emit(self, value: T) -> None:
        """Push a value to all subscribers. Suspends per the overflow policy."""
        buffers = self._snapshot(value)
        if not buffers:
            return
        if len(buffers) == 1:
            await buffers[0].put(value)
        else:
            await asyncio.gather(*(b.put(value) for b in buffers))

    def try_emit(self, value: T) -> bool:
        """Push without suspending. False if a SUSPEND subscriber had no room."""
        accepted = True
        for buffer in self._snapshot(value):
            if not buffer.offer(value) and self._overflow is OverflowPolicy.SUSPEND:
                accepted = False
        return accepted

    def _snapshot(self, value: T) -> list[OverflowBuffer[T]]:
        if self._closed:
            raise ChannelClosedError(f"{self._name} is closed")
        with self._lock:
            buffers = list(self._connections)
        if not buffers:
            logger.debug("%s: no subscribers, dropping %r", self._name, value)
        return buffers

    # --- Subscribe ---

    def subscribe(
        self,
        on_value: Callable[[T], Any],
        *,
        on_error: ErrorHandler | None = None,
        on_complete: Callable[[], None] | None = None,
    ) -> Subscription:
        """Register a subscriber now; its callback runs in its own task."""
        buffer: OverflowBuffer[T] = OverflowBuffer(self._capacity, self._overflow)
        if self._closed:
            buffer.close()
        else:
            with self._lock:
                self._connections.append(buffer)

        async def deliver() -> None:
            async for value in buffer:
                await _invoke(on_value, value)

        sub = Subscription.spawn(
            deliver(),
            name=f"{self._name}:subscriber",
            on_error=on_error,
            on_complete=on_complete,
        )
        sub.add_close_callback(lambda: self._disconnect(buffer))
        return sub

    def _disconnect(self, buffer: OverflowBuffer[T]) -> None:
        buffer.close(discard=True)
        with self._lock:
            try:
                self._connections.remove(buffer)
            except ValueError:
                pass  # already removed

    def close(self) -> None:
        """Complete every subscriber once its pending values are delivered."""
        if self._closed:
            return
        self._closed = True
        with self._lock:
            buffers = list(self._connections)
        for buffer in buffers:
            buffer.close()
        logger.debug("%s: closed with %d subscribers", self._name, len(buffers))

    # --- Views ---

    def as_sequence(self) -> ColdSequence[T]:
        """A cold view: each collection opens a fresh subscription."""
        channel = self

        async def producer(emit: Emit[T]) -> None:
            pending: OverflowBuffer[T] = OverflowBuffer(0, OverflowPolicy.SUSPEND)
            sub = channel.subscribe(pending.put, on_complete=pending.close)
            try:
                async for value in pending:
                    await emit(value)
            finally:
                sub.cancel()

        return ColdSequence(producer)

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return (
            f"BroadcastChannel({self._name!r}, {self._overflow.name}, "
            f"capacity={self._capacity}, subscribers={self.subscriber_count}, {state})"
        )
