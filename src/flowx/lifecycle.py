"""Lifecycle-scoped collection — subscribe while visible, cancel while hidden.

A Lifecycle is a visibility flag held in a LatestValueHolder.
repeat_while_visible() starts a fresh inner subscription every time the
lifecycle becomes visible and cancels it as soon as it is hidden, no matter
how the owner signals visibility.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from flowx.state import LatestValueHolder
from flowx.subscription import Subscription

logger = logging.getLogger("flowx.lifecycle")


class Lifecycle:
    """Visible/hidden state of a UI-bound owner."""

    __slots__ = ("_state", "name")

    def __init__(self, visible: bool = False, *, name: str = "lifecycle") -> None:
        self.name = name
        self._state = LatestValueHolder(visible, name=name)

    @property
    def visible(self) -> bool:
        return self._state.read()

    def show(self) -> None:
        if not self._state.read():
            logger.debug("%s: visible", self.name)
            self._state.write(True)

    def hide(self) -> None:
        if self._state.read():
            logger.debug("%s: hidden", self.name)
            self._state.write(False)

    def repeat_while_visible(self, start: Callable[[], Subscription]) -> Subscription:
        """Call start() on every transition to visible; cancel its result on hide.

        Cancelling the returned handle stops both the watcher and any
        running inner subscription.
        """
        outer = Subscription(f"{self.name}:repeat")
        inner: Subscription | None = None

        def on_visibility(visible: bool) -> None:
            nonlocal inner
            if visible:
                if inner is None or not inner.active:
                    inner = start()
            elif inner is not None:
                inner.cancel()
                inner = None

        watcher = self._state.subscribe(on_visibility, on_error=outer._fail)

        def release() -> None:
            watcher.cancel()
            if inner is not None:
                inner.cancel()

        outer.add_close_callback(release)
        return outer

    def __repr__(self) -> str:
        state = "visible" if self.visible else "hidden"
        return f"Lifecycle({self.name!r}, {state})"


def collect_lifecycle(lifecycle: Lifecycle, stream, fn: Callable[[Any], Any]) -> Subscription:
    """Sequentially collect stream while lifecycle is visible.

    stream is anything with as_sequence(): ColdSequence, LatestValueHolder,
    ReadOnlyValue or BroadcastChannel.
    """
    seq = stream.as_sequence()
    return lifecycle.repeat_while_visible(
        lambda: Subscription.spawn(seq.collect(fn), name=f"{lifecycle.name}:collect")
    )


def collect_latest_lifecycle(
    lifecycle: Lifecycle, stream, fn: Callable[[Any], Any]
) -> Subscription:
    """Latest-only collect of stream while lifecycle is visible."""
    seq = stream.as_sequence()
    return lifecycle.repeat_while_visible(
        lambda: Subscription.spawn(
            seq.collect_latest(fn), name=f"{lifecycle.name}:collect_latest"
        )
    )
