"""Per-cursor bounded buffer with an overflow policy.

Each channel subscriber and each buffered sequence owns one OverflowBuffer.
The producer side calls put()/offer(); the consumer side iterates with
``async for``. Iteration ends once the buffer is closed and drained.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections import deque
from typing import Generic, TypeVar

T = TypeVar("T")

logger = logging.getLogger("flowx.buffer")


class OverflowPolicy(enum.Enum):
    """What a producer does when a consumer's buffer is full."""

    SUSPEND = "suspend"  # producer waits for room
    DROP_OLDEST = "drop_oldest"  # evict the oldest pending value
    DROP_LATEST = "drop_latest"  # discard the incoming value


def check_capacity(capacity: int, overflow: OverflowPolicy) -> None:
    if capacity < 0:
        raise ValueError(f"capacity must be >= 0, got {capacity}")
    if overflow is not OverflowPolicy.SUSPEND and capacity < 1:
        raise ValueError(f"{overflow.name} needs capacity >= 1, got {capacity}")


class OverflowBuffer(Generic[T]):
    """Bounded FIFO between one producer and one consumer task.

    With SUSPEND and capacity 0 the buffer is a rendezvous: put() returns
    only once the consumer has taken the value.
    """

    def __init__(
        self, capacity: int = 0, overflow: OverflowPolicy = OverflowPolicy.SUSPEND
    ) -> None:
        check_capacity(capacity, overflow)
        self._capacity = capacity
        self._overflow = overflow
        self._items: deque[T] = deque()
        self._closed = False
        # Sequence numbers: position of a pending SUSPEND put relative to
        # the consumer is (seq - _taken).
        self._appended = 0
        self._taken = 0
        self._changed = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return len(self._items)

    # --- Producer side ---

    async def put(self, value: T) -> bool:
        """Add a value per the overflow policy. Returns False if it was dropped."""
        if self._overflow is not OverflowPolicy.SUSPEND:
            return self.offer(value)
        if self._closed:
            return False
        seq = self._appended
        self._append(value)
        while seq - self._taken >= self._capacity and not self._closed:
            await self._wait()
        return True

    def offer(self, value: T) -> bool:
        """Add a value without suspending. Returns False if it was not accepted."""
        if self._closed:
            return False
        if len(self._items) >= self._capacity:
            if self._overflow is OverflowPolicy.SUSPEND:
                return False
            if self._overflow is OverflowPolicy.DROP_LATEST:
                logger.debug("Buffer full, dropping incoming %r", value)
                return False
            dropped = self._items.popleft()
            self._taken += 1
            logger.debug("Buffer full, dropping oldest %r", dropped)
        self._append(value)
        return True

    def close(self, *, discard: bool = False) -> None:
        """Stop accepting values. Pending values still drain unless discard."""
        self._closed = True
        if discard:
            self._items.clear()
        self._signal()

    # --- Consumer side ---

    async def get(self) -> T:
        """Take the next value. Raises EOFError once closed and drained."""
        while not self._items:
            if self._closed:
                raise EOFError("buffer closed")
            await self._wait()
        value = self._items.popleft()
        self._taken += 1
        self._signal()
        return value

    def __aiter__(self) -> OverflowBuffer[T]:
        return self

    async def __anext__(self) -> T:
        try:
            return await self.get()
        except EOFError:
            raise StopAsyncIteration from None

    # --- Internals ---

    def _append(self, value: T) -> None:
        self._items.append(value)
        self._appended += 1
        self._signal()

    def _signal(self) -> None:
        # Wake everyone currently waiting; later waiters get a fresh event.
        self._changed.set()
        self._changed = asyncio.Event()

    async def _wait(self) -> None:
        await self._changed.wait()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return (
            f"OverflowBuffer({len(self._items)}/{self._capacity}, "
            f"{self._overflow.name}, {state})"
        )
