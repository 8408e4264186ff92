"""Fire-and-forget runner for side effects of the read and write paths.

Click accounting and lazy deletion of expired records run as detached
asyncio tasks. The caller never awaits them, and their failures are logged
here and nowhere else.

Flow Diagram — spawn()
======================
::
    ┌─────────────┐
    │ spawn(name, │
    │  coroutine) │
    └──────┬──────┘
           ▼
    ┌─────────────┐      ┌──────────────────┐
    │ create_task │─────►│ returns to caller│
    └──────┬──────┘      └──────────────────┘
           ▼ (later)
    ┌─────────────┐
    │ done        │
    │ callback    │──── exception? ──► logger.error + counter
    └─────────────┘

Key Behaviours
===============
- Tasks are referenced until done so the event loop cannot drop them.
- No serialization per key: two clicks on one code are two tasks.
- ``drain()`` waits for everything in flight (shutdown, tests).
"""

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

from prometheus_client import Counter

__all__ = ["BackgroundTasks"]

BACKGROUND_TASKS_TOTAL = Counter(
    "linkly_background_tasks_total",
    "Background side effects scheduled",
    ["name"],
)
BACKGROUND_TASK_FAILURES_TOTAL = Counter(
    "linkly_background_task_failures_total",
    "Background side effects that raised",
    ["name"],
)


class BackgroundTasks:
    """Registry of detached side-effect tasks."""

    def __init__(self, logger: logging.Logger | logging.LoggerAdapter | None = None) -> None:
        self._logger = logger or logging.getLogger("linkly.background")
        self._tasks: set[asyncio.Task] = set()

    def spawn(self, name: str, coroutine: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.create_task(coroutine, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        BACKGROUND_TASKS_TOTAL.labels(name=name.split(":", 1)[0]).inc()
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            self._logger.debug(f"Background task {task.get_name()} cancelled")
            return
        exc = task.exception()
        if exc is not None:
            BACKGROUND_TASK_FAILURES_TOTAL.labels(name=task.get_name().split(":", 1)[0]).inc()
            self._logger.error(
                f"Background task {task.get_name()} failed: {exc}",
                exc_info=(type(exc), exc, exc.__traceback__),
            )

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
