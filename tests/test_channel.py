"""Tests for BroadcastChannel — hot fan-out with overflow policies."""

import asyncio
import logging

import pytest

from flowx import BroadcastChannel, ChannelClosedError, OverflowPolicy, SubscriptionState

UNIT = 0.05


async def _settle():
    """Let subscriber tasks drain what is pending."""
    await asyncio.sleep(0.01)


class TestEmitSubscribe:
    @pytest.mark.asyncio
    async def test_subscriber_receives_emitted_values(self):
        ch = BroadcastChannel()
        received = []
        ch.subscribe(received.append)
        await ch.emit(1)
        await ch.emit(2)
        await _settle()
        assert received == [1, 2]

    @pytest.mark.asyncio
    async def test_multiple_subscribers(self):
        ch = BroadcastChannel()
        a, b = [], []
        ch.subscribe(a.append)
        ch.subscribe(b.append)
        await ch.emit("x")
        await _settle()
        assert a == ["x"]
        assert b == ["x"]
        assert ch.subscriber_count == 2

    @pytest.mark.asyncio
    async def test_emit_without_subscribers_is_dropped(self, caplog):
        ch = BroadcastChannel(name="squares")
        with caplog.at_level(logging.DEBUG, logger="flowx.channel"):
            await ch.emit(9)
        received = []
        ch.subscribe(received.append)
        await ch.emit(16)
        await _settle()
        assert received == [16]
        assert "no subscribers" in caplog.text

    @pytest.mark.asyncio
    async def test_async_callback(self):
        ch = BroadcastChannel()
        received = []

        async def on_value(v):
            await asyncio.sleep(0)
            received.append(v)

        ch.subscribe(on_value)
        await ch.emit(1)
        await _settle()
        assert received == [1]

    @pytest.mark.asyncio
    async def test_cancel(self):
        ch = BroadcastChannel(capacity=4)
        received = []
        sub = ch.subscribe(received.append)
        await ch.emit(1)
        await _settle()
        sub.cancel()
        await ch.emit(2)
        await _settle()
        assert received == [1]
        assert sub.state is SubscriptionState.CANCELLED
        assert ch.subscriber_count == 0


class TestOverflow:
    @pytest.mark.asyncio
    async def test_suspend_waits_for_slowest_subscriber(self):
        ch = BroadcastChannel()
        fast, slow = [], []

        async def slow_cb(v):
            await asyncio.sleep(3 * UNIT)
            slow.append(v)

        ch.subscribe(fast.append)
        ch.subscribe(slow_cb)
        loop = asyncio.get_running_loop()
        start = loop.time()
        await ch.emit(1)
        await ch.emit(2)  # waits until slow_cb is done with 1
        elapsed = loop.time() - start
        assert elapsed >= 2.5 * UNIT
        assert slow == [1]
        assert fast == [1, 2]

    @pytest.mark.asyncio
    async def test_drop_oldest_keeps_newest(self):
        ch = BroadcastChannel(capacity=2, overflow=OverflowPolicy.DROP_OLDEST)
        received = []
        ch.subscribe(received.append)
        for v in range(1, 6):
            await ch.emit(v)  # never suspends
        await _settle()
        assert received == [4, 5]

    @pytest.mark.asyncio
    async def test_drop_latest_keeps_first(self):
        ch = BroadcastChannel(capacity=2, overflow=OverflowPolicy.DROP_LATEST)
        received = []
        ch.subscribe(received.append)
        for v in range(1, 6):
            await ch.emit(v)
        await _settle()
        assert received == [1, 2]

    @pytest.mark.asyncio
    async def test_try_emit(self):
        ch = BroadcastChannel()
        assert ch.try_emit(1)  # no subscribers: dropped, nothing to wait for
        received = []
        ch.subscribe(received.append)
        assert not ch.try_emit(2)  # rendezvous subscriber cannot take it now

        buffered = BroadcastChannel(capacity=1)
        buffered.subscribe(received.append)
        assert buffered.try_emit(3)
        await _settle()
        assert received == [3]

    def test_drop_policy_needs_capacity(self):
        with pytest.raises(ValueError):
            BroadcastChannel(overflow=OverflowPolicy.DROP_OLDEST)
        with pytest.raises(ValueError):
            BroadcastChannel(capacity=-1)


class TestFailureAndClose:
    @pytest.mark.asyncio
    async def test_failed_subscriber_does_not_affect_others(self):
        ch = BroadcastChannel()
        errors = []
        good = []

        def bad_cb(v):
            raise ValueError("consumer broke")

        bad = ch.subscribe(bad_cb, on_error=errors.append)
        ch.subscribe(good.append)
        await ch.emit(1)
        await _settle()
        await ch.emit(2)  # must not hang on the failed subscriber
        await _settle()

        assert good == [1, 2]
        assert bad.state is SubscriptionState.FAILED
        assert isinstance(bad.error, ValueError)
        assert len(errors) == 1
        assert ch.subscriber_count == 1

    @pytest.mark.asyncio
    async def test_close_completes_subscribers(self):
        ch = BroadcastChannel(capacity=4)
        received = []
        completed = []
        sub = ch.subscribe(received.append, on_complete=lambda: completed.append(True))
        await ch.emit(1)
        ch.close()
        await sub.join()
        assert received == [1]
        assert sub.state is SubscriptionState.COMPLETED
        assert completed == [True]

    @pytest.mark.asyncio
    async def test_emit_after_close_raises(self):
        ch = BroadcastChannel()
        ch.close()
        with pytest.raises(ChannelClosedError):
            await ch.emit(1)

    @pytest.mark.asyncio
    async def test_subscribe_after_close_completes(self):
        ch = BroadcastChannel()
        ch.close()
        sub = ch.subscribe(lambda v: None)
        await sub.join()
        assert sub.state is SubscriptionState.COMPLETED


class TestAsSequence:
    @pytest.mark.asyncio
    async def test_collects_emitted_values(self):
        ch = BroadcastChannel()
        task = asyncio.ensure_future(ch.as_sequence().take(2).to_list())
        await _settle()
        await ch.emit("a")
        await ch.emit("b")
        assert await asyncio.wait_for(task, 1) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_completes_when_channel_closes(self):
        ch = BroadcastChannel()
        task = asyncio.ensure_future(ch.as_sequence().to_list())
        await _settle()
        await ch.emit(1)
        ch.close()
        assert await asyncio.wait_for(task, 1) == [1]
