"""Latest-value holders — a mutable cell that always has a current value.

New subscribers immediately receive the current value, then every later
write, in the order they subscribed. Delivery is synchronous: write()
returns after every subscriber callback has run. A write made from inside
a callback is queued and delivered once the current value has reached
every subscriber, so all subscribers see the same order of values.

Thread safety: call set_scheduler() once from the loop thread:
    flowx.set_scheduler(loop.call_soon_threadsafe)

After that, any write() or update() from a background thread is
auto-marshaled onto the scheduler. Writes on the scheduler thread remain synchronous.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Callable, Generic, TypeVar

from flowx.buffer import OverflowBuffer, OverflowPolicy
from flowx.sequence import ColdSequence, Emit
from flowx.subscription import ErrorHandler, Subscription

T = TypeVar("T")

logger = logging.getLogger("flowx.state")

# ─── Auto-marshal ────────────────────────────────────────────────────────────
_scheduler = None
_scheduler_thread = None


def set_scheduler(scheduler) -> None:
    """Set the global thread scheduler for cross-thread holder writes.

    Call once from the loop thread:
        flowx.set_scheduler(asyncio.get_running_loop().call_soon_threadsafe)

    Pass None to turn marshaling off again.
    """
    global _scheduler, _scheduler_thread
    _scheduler = scheduler
    _scheduler_thread = threading.current_thread() if scheduler is not None else None


def _off_scheduler() -> bool:
    return _scheduler is not None and threading.current_thread() != _scheduler_thread


class LatestValueHolder(Generic[T]):
    """A single current value plus the callbacks that follow it."""

    __slots__ = ("_value", "_subscribers", "_lock", "_name", "_pending", "_notifying")

    def __init__(self, value: T, *, name: str = "holder") -> None:
        self._value = value
        self._subscribers: list[tuple[Callable[[T], None], Subscription]] = []
        self._lock = threading.RLock()
        self._name = name
        self._pending: deque[T] = deque()
        self._notifying = False

    # --- Read ---

    def read(self) -> T:
        with self._lock:
            return self._value

    @property
    def value(self) -> T:
        return self.read()

    @value.setter
    def value(self, value: T) -> None:
        self.write(value)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    # --- Write ---

    def write(self, value: T) -> None:
        """Replace the value and notify. Auto-marshals from background threads."""
        if _off_scheduler():
            _scheduler(lambda v=value: self._write_direct(v))
        else:
            self._write_direct(value)

    def update(self, fn: Callable[[T], T]) -> T | None:
        """Atomically write fn(latest). Returns the new value.

        From a background thread the whole read-modify-write is marshaled
        and None is returned.
        """
        if _off_scheduler():
            _scheduler(lambda: self._update_direct(fn))
            return None
        return self._update_direct(fn)

    def _update_direct(self, fn: Callable[[T], T]) -> T:
        with self._lock:
            new = fn(self._pending[-1] if self._pending else self._value)
            self._write_direct(new)
            return new

    def _write_direct(self, value: T) -> None:
        with self._lock:
            self._pending.append(value)
            if self._notifying:
                # Re-entrant write from a callback: the running drain delivers it next.
                return
            self._notifying = True
            try:
                while self._pending:
                    self._value = self._pending.popleft()
                    for callback, sub in list(self._subscribers):
                        if sub.active:
                            self._deliver(callback, sub, self._value)
            finally:
                self._pending.clear()
                self._notifying = False

    # --- Subscribe ---

    def subscribe(
        self,
        on_value: Callable[[T], None],
        *,
        on_error: ErrorHandler | None = None,
    ) -> Subscription:
        """Deliver the current value now, then every later write."""
        sub = Subscription(f"{self._name}:subscriber", on_error=on_error)
        entry = (on_value, sub)
        with self._lock:
            self._subscribers.append(entry)
            sub.add_close_callback(lambda: self._remove(entry))
            self._deliver(on_value, sub, self._value)
        return sub

    def _deliver(self, callback: Callable[[T], None], sub: Subscription, value: T) -> None:
        try:
            callback(value)
        except Exception as exc:
            sub._fail(exc)

    def _remove(self, entry) -> None:
        with self._lock:
            try:
                self._subscribers.remove(entry)
            except ValueError:
                pass  # already removed

    # --- Views ---

    def as_read_only(self) -> ReadOnlyValue[T]:
        return ReadOnlyValue(self)

    def as_sequence(self) -> ColdSequence[T]:
        """A conflated cold view: current value first, then later writes. Never completes."""
        return _holder_sequence(self)

    def __repr__(self) -> str:
        return f"LatestValueHolder({self.read()!r})"


class ReadOnlyValue(Generic[T]):
    """Read/subscribe view of a LatestValueHolder, without write access."""

    __slots__ = ("_holder",)

    def __init__(self, holder: LatestValueHolder[T]) -> None:
        self._holder = holder

    def read(self) -> T:
        return self._holder.read()

    @property
    def value(self) -> T:
        return self._holder.read()

    def subscribe(
        self, on_value: Callable[[T], None], *, on_error: ErrorHandler | None = None
    ) -> Subscription:
        return self._holder.subscribe(on_value, on_error=on_error)

    def as_sequence(self) -> ColdSequence[T]:
        return self._holder.as_sequence()

    def __repr__(self) -> str:
        return f"ReadOnlyValue({self._holder.read()!r})"


def _holder_sequence(holder: LatestValueHolder[T]) -> ColdSequence[T]:
    async def producer(emit: Emit[T]) -> None:
        pending: OverflowBuffer[T] = OverflowBuffer(1, OverflowPolicy.DROP_OLDEST)
        sub = holder.subscribe(pending.offer)
        try:
            async for value in pending:
                await emit(value)
        finally:
            sub.cancel()

    return ColdSequence(producer)
