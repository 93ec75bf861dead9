"""
Bounded pool for fire-and-forget work (post-submission aggregate refresh,
notifications).

Tasks are started immediately but at most `max_concurrency` run at once.
References are held until completion, and a task that raises is logged and
counted instead of disappearing with the request.
"""
from __future__ import annotations

import asyncio
from functools import lru_cache
from typing import Any, Awaitable, Callable

import structlog

from app.core.config import get_settings
from app.core.metrics import BACKGROUND_TASK_FAILURES

logger = structlog.get_logger()


class BackgroundDispatcher:
    def __init__(self, max_concurrency: int = 8) -> None:
        self.max_concurrency = max_concurrency
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(self, name: str, fn: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any) -> asyncio.Task:
        task = asyncio.create_task(self._run(name, fn, *args, **kwargs), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, name: str, fn: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any) -> None:
        async with self._semaphore:
            try:
                await fn(*args, **kwargs)
            except Exception as e:
                BACKGROUND_TASK_FAILURES.labels(task=name).inc()
                logger.error("background_task_failed", task=name, error=str(e), exc_info=True)

    async def drain(self) -> None:
        """Wait for everything submitted so far (and anything those tasks submit)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


@lru_cache
def get_dispatcher() -> BackgroundDispatcher:
    return BackgroundDispatcher(max_concurrency=get_settings().background_max_concurrency)
