"""Subscription — the cancel handle shared by every stream flavor.

A Subscription is one consumer's connection to a stream. It starts ACTIVE
and ends in exactly one terminal state:

    ACTIVE -> CANCELLED   (cancel() called, or the owning task was cancelled)
    ACTIVE -> FAILED      (producer or consumer callback raised)
    ACTIVE -> COMPLETED   (the stream finished or was closed)

Task-backed subscriptions (cold sequences, channels, scope launches) follow
their task. Task-less ones (LatestValueHolder) are driven directly.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import Any, Callable, Coroutine

logger = logging.getLogger("flowx.subscription")

ErrorHandler = Callable[[BaseException], None]


class SubscriptionState(enum.Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"
    FAILED = "failed"
    COMPLETED = "completed"


class Subscription:
    """Handle for one consumer's connection to a stream."""

    __slots__ = (
        "name",
        "_state",
        "_error",
        "_task",
        "_on_error",
        "_on_complete",
        "_close_callbacks",
    )

    def __init__(
        self,
        name: str = "subscription",
        *,
        on_error: ErrorHandler | None = None,
        on_complete: Callable[[], None] | None = None,
    ) -> None:
        self.name = name
        self._state = SubscriptionState.ACTIVE
        self._error: BaseException | None = None
        self._task: asyncio.Task | None = None
        self._on_error = on_error
        self._on_complete = on_complete
        self._close_callbacks: list[Callable[[], None]] = []

    @classmethod
    def spawn(
        cls,
        coro: Coroutine[Any, Any, Any],
        *,
        name: str = "subscription",
        on_error: ErrorHandler | None = None,
        on_complete: Callable[[], None] | None = None,
    ) -> Subscription:
        """Run coro as a task on the running loop and track it."""
        sub = cls(name, on_error=on_error, on_complete=on_complete)
        task = asyncio.get_running_loop().create_task(coro, name=name)
        sub._attach(task)
        return sub

    # --- State ---

    @property
    def state(self) -> SubscriptionState:
        return self._state

    @property
    def active(self) -> bool:
        return self._state is SubscriptionState.ACTIVE

    @property
    def error(self) -> BaseException | None:
        """The failure that ended this subscription, if it FAILED."""
        return self._error

    def add_close_callback(self, fn: Callable[[], None]) -> None:
        """Run fn once when the subscription reaches a terminal state.

        If it already has, fn runs immediately.
        """
        if self.active:
            self._close_callbacks.append(fn)
        else:
            fn()

    # --- Transitions ---

    def cancel(self) -> None:
        """Stop delivery to this subscriber. Idempotent; no-op once terminal."""
        if not self.active:
            return
        self._state = SubscriptionState.CANCELLED
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._run_close_callbacks()

    def _fail(self, exc: BaseException) -> None:
        if not self.active:
            return
        self._state = SubscriptionState.FAILED
        self._error = exc
        logger.error(
            "Subscription %r failed: %s", self.name, exc, exc_info=exc
        )
        self._run_close_callbacks()
        if self._on_error is not None:
            self._on_error(exc)

    def _complete(self) -> None:
        if not self.active:
            return
        self._state = SubscriptionState.COMPLETED
        self._run_close_callbacks()
        if self._on_complete is not None:
            self._on_complete()

    def _run_close_callbacks(self) -> None:
        callbacks, self._close_callbacks = self._close_callbacks, []
        for fn in callbacks:
            fn()

    # --- Task tracking ---

    def _attach(self, task: asyncio.Task) -> None:
        self._task = task
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            if self.active:
                self._state = SubscriptionState.CANCELLED
                self._run_close_callbacks()
            return
        exc = task.exception()
        if exc is not None:
            self._fail(exc)
        else:
            self._complete()

    async def join(self) -> None:
        """Wait until the subscription is terminal. Re-raises its failure."""
        if self._task is not None:
            # asyncio.wait never raises the task's own exception or
            # cancellation, only our own.
            await asyncio.wait({self._task})
        if self._state is SubscriptionState.FAILED and self._error is not None:
            raise self._error

    def __repr__(self) -> str:
        return f"Subscription({self.name!r}, {self._state.value})"
