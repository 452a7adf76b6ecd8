"""Async utilities for bridging blocking filesystem calls to the event loop."""

import asyncio
import logging
from typing import Any, Callable, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous function in a thread pool without blocking the event loop.

    Every external-store read, write, stat and listing goes through here,
    which makes each of them a suspension point for the engine.

    Args:
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)

    Example:
        content = await run_sync(path.read_bytes)
    """
    return await asyncio.to_thread(func, *args, **kwargs)


async def settle(delay: float) -> None:
    """Sleep for a fixed settle delay; a zero or negative delay only yields."""
    await asyncio.sleep(max(delay, 0))
