"""Scope — owns the subscriptions and tasks of one owner (e.g. a view-model).

Everything launched in or adopted by a scope is cancelled when the scope
closes, so streams live exactly as long as their owner.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine

from flowx.subscription import Subscription

logger = logging.getLogger("flowx.scope")


class Scope:
    """Subscription container with owner lifecycle."""

    def __init__(self, name: str = "scope") -> None:
        self.name = name
        self._subscriptions: list[Subscription] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def active_count(self) -> int:
        return len(self._subscriptions)

    def launch(self, coro: Coroutine[Any, Any, Any], *, name: str | None = None) -> Subscription:
        """Run coro as a task owned by this scope."""
        if self._closed:
            coro.close()
            raise RuntimeError(f"scope {self.name!r} is closed")
        sub = Subscription.spawn(coro, name=name or f"{self.name}:task")
        return self.adopt(sub)

    def adopt(self, subscription: Subscription) -> Subscription:
        """Track an existing subscription; it is cancelled when the scope closes."""
        if self._closed:
            subscription.cancel()
            raise RuntimeError(f"scope {self.name!r} is closed")
        self._subscriptions.append(subscription)
        subscription.add_close_callback(lambda: self._forget(subscription))
        return subscription

    def _forget(self, subscription: Subscription) -> None:
        try:
            self._subscriptions.remove(subscription)
        except ValueError:
            pass  # already forgotten during close()

    async def join(self) -> None:
        """Wait for the task-backed work tracked right now to finish.

        Failures were already logged and surfaced by each subscription.
        """
        await asyncio.gather(
            *(s.join() for s in list(self._subscriptions)), return_exceptions=True
        )

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        subscriptions, self._subscriptions = self._subscriptions, []
        for sub in subscriptions:
            sub.cancel()
        logger.debug("Closed %s: cancelled %d subscriptions", self.name, len(subscriptions))

    def __enter__(self) -> Scope:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    async def __aenter__(self) -> Scope:
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"Scope({self.name!r}, {len(self._subscriptions)} active, {state})"
