"""Bridge from synchronous entry points (Celery tasks, CLI) into async services."""

import asyncio
from collections.abc import Coroutine
from typing import Any, TypeVar

T = TypeVar("T")


def _loop() -> asyncio.AbstractEventLoop:
    try:
        loop = asyncio.get_event_loop()
    except RuntimeError:
        loop = None
    if loop is None or loop.is_closed():
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
    return loop


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run ``coro`` to completion on this thread's long-lived event loop.

    The loop stays open between calls: a worker process handles many tasks in
    sequence, and shared HTTP clients and detached storage promotion started
    by one call stay bound to the loop that created them.
    """
    return _loop().run_until_complete(coro)
