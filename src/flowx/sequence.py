"""Cold sequences — producers that re-run for every consumer.

A ColdSequence wraps an async producer ``async def producer(emit)``.
Nothing runs until someone collects; each collection runs the producer
from the start, so concurrent consumers never share state or timing.

Operators (map/filter/on_each/take/buffer/conflate) return new sequences.
The chain is rebuilt per collection, so operators hold no state between
subscriptions either.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Generic, TypeVar

from flowx.buffer import OverflowBuffer, OverflowPolicy, check_capacity
from flowx.subscription import ErrorHandler, Subscription

T = TypeVar("T")
U = TypeVar("U")

Emit = Callable[[T], Awaitable[None]]
Producer = Callable[[Emit[T]], Awaitable[None]]


async def _invoke(fn: Callable[..., Any], *args: Any) -> Any:
    """Call fn; await the result if it is awaitable. Accepts sync and async fns."""
    result = fn(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class _StopCollecting(Exception):
    """Raised inside a producer by take() once enough values were seen."""


class ColdSequence(Generic[T]):
    """A producer definition, instantiated anew per subscription."""

    __slots__ = ("_producer",)

    def __init__(self, producer: Producer[T]) -> None:
        self._producer = producer

    # --- Consumption ---

    async def collect(self, fn: Callable[[T], Any] | None = None) -> None:
        """Sequential mode: each value is fully handled before the next is produced."""

        async def emit(value: T) -> None:
            if fn is not None:
                await _invoke(fn, value)

        await self._producer(emit)

    async def collect_latest(self, fn: Callable[[T], Any]) -> None:
        """Latest-only mode: a new value cancels the handler still running for the old one.

        A handler failure stops the producer right away and is raised here,
        without waiting for the next emission.
        """
        collector = asyncio.current_task()
        current: asyncio.Task | None = None
        failure: BaseException | None = None

        def on_handler_done(task: asyncio.Task) -> None:
            nonlocal failure
            if task.cancelled() or task.exception() is None or failure is not None:
                return
            failure = task.exception()
            collector.cancel()

        async def emit(value: T) -> None:
            nonlocal current
            if current is not None and not current.done():
                current.cancel()
                await asyncio.wait({current})
            current = asyncio.ensure_future(_invoke(fn, value))
            current.add_done_callback(on_handler_done)

        try:
            await self._producer(emit)
            if current is not None:
                await current
        except asyncio.CancelledError:
            if failure is None:
                raise
            # The cancellation was ours; report the handler's error instead.
            collector.uncancel()
            raise failure from None
        finally:
            if current is not None and not current.done():
                current.cancel()

    def subscribe(
        self,
        on_value: Callable[[T], Any],
        *,
        on_error: ErrorHandler | None = None,
        on_complete: Callable[[], None] | None = None,
    ) -> Subscription:
        """Start an independent run of the producer on the running loop."""
        return Subscription.spawn(
            self.collect(on_value),
            name=f"cold:{_describe(self._producer)}",
            on_error=on_error,
            on_complete=on_complete,
        )

    def launch_in(self, scope, fn: Callable[[T], Any] | None = None) -> Subscription:
        """Collect inside scope; cancelled when the scope closes."""
        return scope.launch(self.collect(fn), name=f"cold:{_describe(self._producer)}")

    def as_sequence(self) -> ColdSequence[T]:
        return self

    def __aiter__(self):
        return _iterate(self)

    # --- Terminal operators ---

    async def count(self, predicate: Callable[[T], bool] | None = None) -> int:
        """Run to completion and count values (matching predicate, if given)."""
        total = 0

        def tally(value: T) -> None:
            nonlocal total
            if predicate is None or predicate(value):
                total += 1

        await self.collect(tally)
        return total

    async def to_list(self) -> list[T]:
        items: list[T] = []
        await self.collect(items.append)
        return items

    async def first(self) -> T:
        """First value; the producer is stopped right after it. Raises LookupError if empty."""
        items = await self.take(1).to_list()
        if not items:
            raise LookupError("sequence completed without emitting")
        return items[0]

    # --- Intermediate operators ---

    def map(self, fn: Callable[[T], U]) -> ColdSequence[U]:
        """Transform each value through fn (sync or async)."""
        upstream = self._producer

        async def producer(emit: Emit[U]) -> None:
            async def forward(value: T) -> None:
                await emit(await _invoke(fn, value))

            await upstream(forward)

        return ColdSequence(producer)

    def filter(self, fn: Callable[[T], bool]) -> ColdSequence[T]:
        """Only pass values where fn returns True."""
        upstream = self._producer

        async def producer(emit: Emit[T]) -> None:
            async def forward(value: T) -> None:
                if await _invoke(fn, value):
                    await emit(value)

            await upstream(forward)

        return ColdSequence(producer)

    def on_each(self, fn: Callable[[T], Any]) -> ColdSequence[T]:
        """Side-effect tap: call fn with each value, pass the value on unchanged."""
        upstream = self._producer

        async def producer(emit: Emit[T]) -> None:
            async def forward(value: T) -> None:
                await _invoke(fn, value)
                await emit(value)

            await upstream(forward)

        return ColdSequence(producer)

    def take(self, n: int) -> ColdSequence[T]:
        """Pass the first n values, then stop the upstream producer."""
        if n < 0:
            raise ValueError(f"take() needs n >= 0, got {n}")
        upstream = self._producer

        async def producer(emit: Emit[T]) -> None:
            if n == 0:
                return
            seen = 0
            stop = _StopCollecting()

            async def forward(value: T) -> None:
                nonlocal seen
                seen += 1
                await emit(value)
                if seen >= n:
                    raise stop

            try:
                await upstream(forward)
            except _StopCollecting as exc:
                if exc is not stop:
                    raise

        return ColdSequence(producer)

    def buffer(
        self, capacity: int = 64, overflow: OverflowPolicy = OverflowPolicy.SUSPEND
    ) -> ColdSequence[T]:
        """Run the upstream producer in its own task so it can run ahead of the collector."""
        check_capacity(capacity, overflow)
        upstream = self._producer

        async def producer(emit: Emit[T]) -> None:
            pending: OverflowBuffer[T] = OverflowBuffer(capacity, overflow)

            async def pump() -> None:
                try:
                    await upstream(pending.put)
                finally:
                    pending.close()

            task = asyncio.ensure_future(pump())
            try:
                async for value in pending:
                    await emit(value)
                await task
            finally:
                if not task.done():
                    task.cancel()
                    await asyncio.wait({task})

        return ColdSequence(producer)

    def conflate(self) -> ColdSequence[T]:
        """Keep only the newest pending value while the collector is busy."""
        return self.buffer(1, OverflowPolicy.DROP_OLDEST)

    def __repr__(self) -> str:
        return f"ColdSequence({_describe(self._producer)})"


def _describe(fn: Callable) -> str:
    return getattr(fn, "__qualname__", None) or repr(fn)


async def _iterate(seq: ColdSequence[T]):
    """Async-iterate a sequence by running its producer in a helper task."""
    pending: OverflowBuffer[T] = OverflowBuffer(0, OverflowPolicy.SUSPEND)

    async def pump() -> None:
        try:
            await seq._producer(pending.put)
        finally:
            pending.close()

    task = asyncio.ensure_future(pump())
    try:
        async for value in pending:
            yield value
        await task
    finally:
        if not task.done():
            task.cancel()
            await asyncio.wait({task})


def cold(producer: Producer[T]) -> ColdSequence[T]:
    """Decorator/factory to create a ColdSequence from an async producer.

    Usage:
        @cold
        async def ticks(emit):
            for i in range(3):
                await emit(i)
                await asyncio.sleep(1)

        await ticks.to_list()  # [0, 1, 2]
    """
    return ColdSequence(producer)


def sequence_of(*values: T, interval: float = 0) -> ColdSequence[T]:
    """A sequence emitting the given values, sleeping interval seconds between them."""

    async def producer(emit: Emit[T]) -> None:
        for index, value in enumerate(values):
            if index and interval:
                await asyncio.sleep(interval)
            await emit(value)

    return ColdSequence(producer)
