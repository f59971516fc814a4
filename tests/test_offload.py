"""Tests for offload() — blocking work on an executor, results back on the loop."""

import threading
import time

import pytest

from flowx import LatestValueHolder, offload


class TestOffload:
    @pytest.mark.asyncio
    async def test_returns_result_from_other_thread(self):
        loop_thread = threading.get_ident()

        def blocking(x, y):
            time.sleep(0.01)
            return x + y, threading.get_ident()

        total, worker_thread = await offload(blocking, 2, 3)
        assert total == 5
        assert worker_thread != loop_thread

    @pytest.mark.asyncio
    async def test_exception_propagates(self):
        def broken():
            raise OSError("disk")

        with pytest.raises(OSError, match="disk"):
            await offload(broken)

    @pytest.mark.asyncio
    async def test_result_written_on_loop_thread(self):
        state = LatestValueHolder("idle")
        seen_threads = []
        state.subscribe(lambda v: seen_threads.append(threading.get_ident()))

        result = await offload(lambda: "loaded")
        state.write(result)

        assert state.read() == "loaded"
        assert set(seen_threads) == {threading.get_ident()}
