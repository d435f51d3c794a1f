from __future__ import annotations

import asyncio
from typing import Any, Callable, List, Literal, Optional

from loguru import logger

from ..metrics import metrics_registry
from .types import Record

FlushTrigger = Literal["size", "timer", "drain", "manual"]
BatchDispatcher = Callable[[List[Record]], Any]


class BatchQueue:
    """Buffer of records flushed by count or by elapsed time.

    The size trigger bounds batch size and memory; the time trigger bounds the
    latency of the first record buffered after a flush. The timer is armed once
    per empty -> non-empty transition and is not pushed back by later records.
    """

    def __init__(
        self,
        dispatch: BatchDispatcher,
        *,
        batch_size: Optional[int] = None,
        batch_timeout_ms: int = 0,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        if batch_size is not None and batch_size < 0:
            raise ValueError("batch_size must be >= 0")
        if batch_timeout_ms < 0:
            raise ValueError("batch_timeout_ms must be >= 0")

        self._dispatch = dispatch
        self._batch_size = batch_size or None  # 0 behaves like "no size trigger"
        self._timeout_ms = batch_timeout_ms
        self._loop = loop

        self._buffer: List[Record] = []
        self._timer: Optional[asyncio.TimerHandle] = None

    @property
    def pending(self) -> int:
        return len(self._buffer)

    @property
    def timer_armed(self) -> bool:
        return self._timer is not None

    def __len__(self) -> int:
        return len(self._buffer)

    def push(self, record: Record) -> None:
        """Buffer ``record``; flush at once if the size threshold is reached."""
        self._buffer.append(record)

        if self._batch_size is not None and len(self._buffer) >= self._batch_size:
            self.flush("size")
        elif self._timeout_ms and self._timer is None:
            loop = self._loop or asyncio.get_running_loop()
            self._timer = loop.call_later(self._timeout_ms / 1000.0, self._on_timer)

    def flush(self, trigger: FlushTrigger = "manual") -> int:
        """Hand every buffered record to the dispatcher as one batch.

        Safe to call at any time, including on an empty queue.

        Returns:
            Number of records flushed (0 when nothing was buffered)
        """
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

        batch, self._buffer = self._buffer, []
        if not batch:
            return 0

        metrics_registry.flushes_total.labels(trigger=trigger).inc()
        logger.debug(f"Flushing {len(batch)} record(s) (trigger={trigger})")
        self._dispatch(batch)
        return len(batch)

    def _on_timer(self) -> None:
        self._timer = None
        self.flush("timer")
