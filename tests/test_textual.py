"""Tests for flowx.textual — Textual integration layer."""

import asyncio
import threading

import pytest
from textual.css.query import NoMatches

from flowx import BroadcastChannel, LatestValueHolder, SubscriptionState
from flowx import textual as ftx


class _MockApp:
    """Minimal mock matching the Textual App interface ftx needs."""

    def __init__(self, *, is_running=True):
        self.is_running = is_running
        self._call_from_thread_log = []

    def call_from_thread(self, fn, *args):
        self._call_from_thread_log.append((fn, args))
        fn(*args)


class TestCollect:
    def test_skips_when_not_running(self):
        app = _MockApp(is_running=False)
        h = LatestValueHolder(1)
        effects = []
        ftx.collect(app, h, effects.append)
        h.write(2)
        assert effects == []

    def test_skips_during_pause(self):
        app = _MockApp()
        h = LatestValueHolder(1)
        effects = []
        ftx.collect(app, h, effects.append)
        with ftx.pause(app):
            h.write(2)
        h.write(3)
        assert effects == [1, 3]

    def test_catches_nomatch(self):
        """NoMatches from widget queries skips the value; the subscription stays active."""
        app = _MockApp()
        h = LatestValueHolder(1)
        effects = []

        def _effect(v):
            if v == 2:
                raise NoMatches("CounterLabel")
            effects.append(v)

        sub = ftx.collect(app, h, _effect)
        h.write(2)
        h.write(3)
        assert effects == [1, 3]
        assert sub.active

    def test_real_errors_fail_subscription(self):
        app = _MockApp()
        h = LatestValueHolder(1)
        errors = []

        def _effect(v):
            if v == 2:
                raise ValueError("boom")

        sub = ftx.collect(app, h, _effect, on_error=errors.append)
        h.write(2)
        assert sub.state is SubscriptionState.FAILED
        assert str(errors[0]) == "boom"

    def test_cancel_stops(self):
        app = _MockApp()
        h = LatestValueHolder(1)
        effects = []
        sub = ftx.collect(app, h, effects.append)
        sub.cancel()
        h.write(2)
        assert effects == [1]

    def test_thread_marshal(self):
        """Deliveries from a background thread use call_from_thread."""
        app = _MockApp()
        h = LatestValueHolder(1)
        effects = []
        ftx.collect(app, h, effects.append)

        t = threading.Thread(target=lambda: h.write(2))
        t.start()
        t.join()

        assert effects == [1, 2]
        assert len(app._call_from_thread_log) >= 1

    @pytest.mark.asyncio
    async def test_channel(self):
        app = _MockApp()
        ch = BroadcastChannel()
        effects = []
        ftx.collect(app, ch, effects.append)
        await ch.emit("hello")
        await asyncio.sleep(0.01)
        assert effects == ["hello"]


class TestPause:
    def test_pause_restores_on_exception(self):
        app = _MockApp()
        assert ftx.is_safe(app)

        with pytest.raises(RuntimeError):
            with ftx.pause(app):
                assert not ftx.is_safe(app)
                raise RuntimeError("oops")

        assert ftx.is_safe(app)

    def test_pause_does_not_mutate_app(self):
        app = _MockApp()
        attrs_before = set(vars(app))
        with ftx.pause(app):
            attrs_during = set(vars(app))
        assert attrs_before == attrs_during
        assert attrs_before == set(vars(app))

    def test_nested_pause_holds_until_outermost_exit(self):
        app = _MockApp()
        h = LatestValueHolder(1)
        effects = []
        ftx.collect(app, h, effects.append)
        with ftx.pause(app):
            with ftx.pause(app):
                h.write(2)
            h.write(3)
            assert not ftx.is_safe(app)
        h.write(4)
        assert effects == [1, 4]
        assert ftx.is_safe(app)

    def test_multiple_apps_independent(self):
        app_a = _MockApp()
        app_b = _MockApp()
        with ftx.pause(app_a):
            assert not ftx.is_safe(app_a)
            assert ftx.is_safe(app_b)
