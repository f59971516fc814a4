"""Tests for Scope — owner lifetime for launched work."""

import asyncio

import pytest

from flowx import LatestValueHolder, Scope, SubscriptionState


class TestScope:
    @pytest.mark.asyncio
    async def test_launch_runs(self):
        scope = Scope()
        results = []

        async def work():
            results.append(1)

        sub = scope.launch(work())
        await scope.join()
        assert results == [1]
        assert sub.state is SubscriptionState.COMPLETED
        assert scope.active_count == 0

    @pytest.mark.asyncio
    async def test_close_cancels_pending_work(self):
        scope = Scope("vm")
        sub = scope.launch(asyncio.sleep(10))
        await asyncio.sleep(0)
        scope.close()
        await sub.join()
        assert sub.state is SubscriptionState.CANCELLED
        assert scope.closed

    @pytest.mark.asyncio
    async def test_launch_after_close_raises(self):
        scope = Scope()
        scope.close()
        with pytest.raises(RuntimeError, match="closed"):
            scope.launch(asyncio.sleep(0))

    def test_adopt_and_close(self):
        h = LatestValueHolder(0)
        received = []
        with Scope() as scope:
            scope.adopt(h.subscribe(received.append))
            h.write(1)
        h.write(2)
        assert received == [0, 1]

    @pytest.mark.asyncio
    async def test_async_context_manager(self):
        async with Scope() as scope:
            sub = scope.launch(asyncio.sleep(10))
        await sub.join()
        assert sub.state is SubscriptionState.CANCELLED

    def test_close_idempotent(self):
        scope = Scope()
        scope.close()
        scope.close()  # should not raise
        assert "closed" in repr(scope)
