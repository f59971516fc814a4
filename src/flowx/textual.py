"""Textual integration for flowx. Opt-in — requires textual.

collect() hands stream values to a widget-updating effect. All Textual
coupling lives here; the core streams never import textual.

Pause state is owned by this module and counted per app, so nested
pause() blocks keep delivery off until the outermost one exits.
"""

import logging
import threading
from collections import Counter
from contextlib import contextmanager

from textual.css.query import NoMatches

logger = logging.getLogger("flowx.textual")

# id(app) -> depth of active pause() blocks
_pause_depth: Counter[int] = Counter()


@contextmanager
def pause(app):
    """Hold back deliveries to app's widgets, e.g. while they are being replaced."""
    key = id(app)
    _pause_depth[key] += 1
    try:
        yield
    finally:
        _pause_depth[key] -= 1
        if _pause_depth[key] <= 0:
            del _pause_depth[key]


def is_safe(app) -> bool:
    """True when app is running and not inside pause()."""
    return app.is_running and id(app) not in _pause_depth


class _WidgetSink:
    """Stream callback that applies values to widgets on the app's thread."""

    __slots__ = ("_app", "_effect", "_owner_thread")

    def __init__(self, app, effect) -> None:
        self._app = app
        self._effect = effect
        self._owner_thread = threading.get_ident()

    def __call__(self, value) -> None:
        if not is_safe(self._app):
            return
        if threading.get_ident() == self._owner_thread:
            self._apply(value)
        else:
            self._app.call_from_thread(self._apply, value)

    def _apply(self, value) -> None:
        try:
            self._effect(value)
        except NoMatches:
            # Widget was removed between emission and delivery.
            logger.debug("No widget for %r, value skipped", value)


def collect(app, stream, effect, *, on_error=None):
    """Subscribe effect to stream, delivering only while the app can take it.

    Values arriving while the app is paused or not running are skipped.
    Deliveries from other threads go through app.call_from_thread.
    A NoMatches from the effect skips that value; any other exception
    fails the returned subscription.
    """
    return stream.subscribe(_WidgetSink(app, effect), on_error=on_error)
