"""Counter view-model — the tutorial examples expressed with flowx.

- count_down: a cold 10..0 countdown, restarted per collector
- restaurant_menu: three courses with uneven delays, for comparing
  collect / buffer / conflate / collect_latest
- counter: a latest-value holder the UI increments
- squares: a broadcast channel; squares emitted before anyone listens are lost
"""

from __future__ import annotations

import asyncio
import logging

from flowx.channel import BroadcastChannel
from flowx.scope import Scope
from flowx.sequence import ColdSequence, Emit, cold
from flowx.state import LatestValueHolder, ReadOnlyValue
from flowx.subscription import Subscription

logger = logging.getLogger("flowx.demo")

COURSES = ("Appetizer", "Main dish", "Dessert")


def countdown(start: int = 10, interval: float = 1.0) -> ColdSequence[int]:
    """start, start-1, ..., 0 with interval seconds between values."""

    @cold
    async def count_down(emit: Emit[int]) -> None:
        current = start
        await emit(current)
        while current > 0:
            await asyncio.sleep(interval)
            current -= 1
            await emit(current)

    return count_down


def restaurant(delays: tuple[float, float, float] = (0.25, 1.0, 0.2)) -> ColdSequence[str]:
    """Each course is served after its delay."""

    @cold
    async def serve(emit: Emit[str]) -> None:
        for course, delay in zip(COURSES, delays):
            await asyncio.sleep(delay)
            await emit(course)

    return serve


class CounterViewModel:
    """Owner of the demo streams. close() releases everything it launched.

    Construct it on a running loop: like the original view-model it starts
    its squares scenario right away. square_number(3) is launched before the
    two listeners exist, so 9 is lost; square_number(4) reaches both.
    """

    def __init__(self, *, interval: float = 1.0) -> None:
        self.scope = Scope("counter-view-model")
        self.count_down = countdown(10, interval)
        self.restaurant_menu = restaurant(tuple(d * interval for d in (0.25, 1.0, 0.2)))
        self._counter = LatestValueHolder(0, name="counter")
        self.counter: ReadOnlyValue[int] = self._counter.as_read_only()
        self.squares: BroadcastChannel[int] = BroadcastChannel(name="squares")

        self.square_number(3)
        self.listeners = (
            self._listen("FIRST FLOW", 2 * interval),
            self._listen("SECOND FLOW", 3 * interval),
        )
        self.square_number(4)

    def increment_counter(self) -> int | None:
        return self._counter.update(lambda n: n + 1)

    def square_number(self, number: int) -> Subscription:
        """Emit number**2 on the squares channel from a scope task."""
        return self.scope.launch(self.squares.emit(number * number), name="square")

    def _listen(self, label: str, delay: float) -> Subscription:
        async def on_square(value: int) -> None:
            await asyncio.sleep(delay)
            logger.info("%s: the received number is %d", label, value)

        # Subscribes when the task first runs, after earlier launches.
        return self.scope.launch(self.squares.as_sequence().collect(on_square), name=label)

    async def even_squares_count(self) -> int:
        """Filter even countdown values, square them, log each, count them."""
        return await (
            self.count_down.filter(lambda t: t % 2 == 0)
            .map(lambda t: t * t)
            .on_each(lambda t: logger.info("%d", t))
            .count(lambda t: t % 2 == 0)
        )

    def close(self) -> None:
        self.scope.close()
        self.squares.close()
