from __future__ import annotations

import asyncio
from typing import Any, Coroutine, Set

from loguru import logger

from ..metrics import metrics_registry


class InFlightRegistry:
    """Outstanding work of one engine: delivery chains and observer callbacks.

    Chains are counted one task per chain. Coroutine observers run as separate
    tasks so they never hold up a chain; they are tracked here too so a drain
    also waits for them. Every task is removed by its own done-callback, so
    every exit path (success, exhausted retries, unexpected exception,
    cancellation) releases the entry.
    """

    def __init__(self) -> None:
        self._tasks: Set[asyncio.Task] = set()
        self._observers: Set[asyncio.Task] = set()

    def __len__(self) -> int:
        """Number of delivery chains in flight."""
        return len(self._tasks)

    def __bool__(self) -> bool:
        return bool(self._tasks)

    @property
    def observers(self) -> int:
        """Number of coroutine observers still running."""
        return len(self._observers)

    @property
    def idle(self) -> bool:
        """True when no chain and no observer is outstanding."""
        return not self._tasks and not self._observers

    def track(self, coro: Coroutine[Any, Any, None], *, name: str | None = None) -> asyncio.Task:
        """Schedule a delivery chain on the running loop and track it until it finishes."""
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        metrics_registry.inflight_chains.inc()
        task.add_done_callback(self._release)
        return task

    def track_observer(
        self, coro: Coroutine[Any, Any, None], *, name: str | None = None
    ) -> asyncio.Task:
        """Schedule an observer coroutine; it is waited on by drains but is not a chain."""
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._observers.add(task)
        task.add_done_callback(self._release_observer)
        return task

    async def wait(self) -> None:
        """Wait for every task tracked at call time to finish. Never raises."""
        pending = self._tasks | self._observers
        if not pending:
            return
        await asyncio.wait(pending)

    def _release(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        metrics_registry.inflight_chains.dec()
        self._report(task, "Delivery chain")

    def _release_observer(self, task: asyncio.Task) -> None:
        self._observers.discard(task)
        self._report(task, "Observer")

    @staticmethod
    def _report(task: asyncio.Task, what: str) -> None:
        if task.cancelled():
            logger.warning(f"{what} {task.get_name()} was cancelled")
            return
        exc = task.exception()
        if exc is not None:
            logger.opt(exception=exc).error(
                f"{what} {task.get_name()} crashed: {type(exc).__name__}: {exc}"
            )
