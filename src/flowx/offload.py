"""offload() — run blocking work off the loop, resume on the loop.

The callable runs on an executor thread. Its result (or exception) comes
back to the awaiting task on the event loop, so any holder writes or
channel emits that follow happen on the single scheduler.
"""

from __future__ import annotations

import asyncio
import functools
from concurrent.futures import Executor
from typing import Any, Callable, TypeVar

R = TypeVar("R")


async def offload(
    fn: Callable[..., R], *args: Any, executor: Executor | None = None
) -> R:
    """Await fn(*args) run on executor (the loop's default if None).

    Usage:
        async def refresh():
            rows = await offload(load_rows, path)   # blocking I/O on a thread
            table.write(rows)                       # back on the loop
    """
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(executor, functools.partial(fn, *args))
