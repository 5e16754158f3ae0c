"""Bridges for calling async services from synchronous Flask routes.

All coroutines run on one long-lived event loop in a daemon thread, so async
SDK clients created on first use stay bound to the same loop for the life of
the process.
"""

import asyncio
import logging
import threading
from collections.abc import AsyncIterator, Iterator
from typing import Any

logger = logging.getLogger(__name__)

_loop: asyncio.AbstractEventLoop | None = None
_loop_lock = threading.Lock()


def get_background_loop() -> asyncio.AbstractEventLoop:
    """Return the shared background event loop, starting it on first use."""
    global _loop
    with _loop_lock:
        if _loop is None or _loop.is_closed():
            _loop = asyncio.new_event_loop()
            thread = threading.Thread(
                target=_loop.run_forever, name="sourcelens-async", daemon=True
            )
            thread.start()
            logger.debug("Background event loop started")
        return _loop


def run_async(coro: Any) -> Any:
    """Run an async coroutine on the background loop and wait for its result.

    This is useful for calling async functions from synchronous Flask routes.

    Args:
        coro: An awaitable coroutine to execute

    Returns:
        The result of the coroutine

    Note:
        For CLI commands, prefer using asyncio.run() directly.
    """
    return asyncio.run_coroutine_threadsafe(coro, get_background_loop()).result()


_EXHAUSTED = object()


async def _anext(agen: AsyncIterator) -> Any:
    try:
        return await agen.__anext__()
    except StopAsyncIteration:
        return _EXHAUSTED


async def _aclose(agen: AsyncIterator) -> None:
    close = getattr(agen, "aclose", None)
    if close is not None:
        await close()


def iterate_async(agen: AsyncIterator) -> Iterator:
    """Drive an async iterator from synchronous code, one item at a time.

    Closing the returned generator (as WSGI servers do when a client
    disconnects) closes ``agen`` on the background loop, which stops any
    further work it would have done.
    """
    try:
        while True:
            item = run_async(_anext(agen))
            if item is _EXHAUSTED:
                return
            yield item
    finally:
        run_async(_aclose(agen))
