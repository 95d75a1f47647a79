"""Async helper for running blocking local I/O off the event loop."""

import asyncio
from typing import Any, Callable, TypeVar

T = TypeVar("T")


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous function in a worker thread and await it.

    Used for local file reads and writes so the session's channel is never
    blocked by disk I/O.

    Example:
        content = await run_sync(read_script_file, path)
    """
    return await asyncio.to_thread(func, *args, **kwargs)
