from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from typing import Any, Optional

logger = logging.getLogger(__name__)

_background_tasks: set[asyncio.Task] = set()


async def maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def fire_and_forget(callback: Optional[Callable[..., Any]], *args: Any) -> None:
    """
    Invoke a host callback without waiting on it.

    Exceptions are logged and dropped. A coroutine returned by the callback
    is scheduled on the running loop and never awaited here.
    """
    if callback is None:
        return
    try:
        result = callback(*args)
    except Exception:  # noqa: BLE001
        logger.exception("Callback %r raised", callback)
        return
    if inspect.isawaitable(result):
        schedule_awaitable(result)


def schedule_awaitable(awaitable: Any) -> Optional[asyncio.Future]:
    try:
        task = asyncio.ensure_future(awaitable)
    except RuntimeError:
        logger.warning("No running loop for awaitable %r", awaitable)
        if inspect.iscoroutine(awaitable):
            awaitable.close()
        return None
    _background_tasks.add(task)
    task.add_done_callback(_finish_background_task)
    return task


def _finish_background_task(task: asyncio.Task) -> None:
    _background_tasks.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Async callback failed: %s", exc, exc_info=exc)
