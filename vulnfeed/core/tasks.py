"""Fire-and-forget background tasks.

Callers get "task accepted", never "task succeeded": the coroutine's own
failures go to the log, not back to whoever spawned it.
"""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from typing import Any

from vulnfeed.core.logging import get_logger

logger = get_logger(__name__)

# Strong references: the event loop only keeps weak ones to running tasks
_background_tasks: set[asyncio.Task[Any]] = set()


def spawn(coro: Coroutine[Any, Any, Any], *, name: str) -> asyncio.Task[Any]:
    """Schedule *coro* on the running loop and log anything it raises."""
    task = asyncio.create_task(coro, name=name)
    _background_tasks.add(task)
    task.add_done_callback(_on_done)
    return task


def _on_done(task: asyncio.Task[Any]) -> None:
    _background_tasks.discard(task)
    if task.cancelled():
        logger.info("Background task cancelled", task=task.get_name())
        return
    exc = task.exception()
    if exc is not None:
        logger.error(
            "Background task failed",
            task=task.get_name(),
            error=str(exc),
            exc_info=exc,
        )


def pending_tasks() -> list[asyncio.Task[Any]]:
    return list(_background_tasks)


async def cancel_all() -> None:
    """Cancel outstanding background tasks (application shutdown)."""
    tasks = pending_tasks()
    for task in tasks:
        task.cancel()
    if tasks:
        await asyncio.gather(*tasks, return_exceptions=True)
