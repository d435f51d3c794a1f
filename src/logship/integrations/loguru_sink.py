"""
loguru sink that feeds a ``LogShipper``.

    shipper = LogShipper(cfg)
    sink = LoguruSink(shipper)
    logger.add(sink, level="INFO")
    ...
    await sink.complete()   # drain before exit

Messages logged by logship itself (flushes, retries, drops) are never
shipped: each delivery would log again and a drain would never settle.
"""

from __future__ import annotations

import asyncio
import traceback
from typing import Any, Dict, Optional

from ..shipper.engine import LogShipper

_RESERVED = {"message", "level", "timestamp", "logger", "function", "line", "file"}


def is_own_message(record: Dict[str, Any]) -> bool:
    """True for records emitted by the logship package."""
    name = record["name"] or ""
    return name == "logship" or name.startswith("logship.")


def message_to_record(message: Any) -> Dict[str, Any]:
    """Convert a loguru message (or its ``record`` dict) into a shippable record."""
    rec = getattr(message, "record", message)

    out: Dict[str, Any] = {
        "message": rec["message"],
        "level": rec["level"].name,
        "timestamp": int(rec["time"].timestamp() * 1000),
        "logger": rec["name"],
        "function": rec["function"],
        "line": rec["line"],
        "file": rec["file"].name,
    }

    for key, value in rec["extra"].items():
        if key not in _RESERVED:
            out[key] = value

    exc = rec["exception"]
    if exc is not None and exc.type is not None:
        out["error.class"] = exc.type.__name__
        out["error.message"] = str(exc.value)
        out["error.stack"] = "".join(
            traceback.format_exception(exc.type, exc.value, exc.traceback)
        )
    return out


class LoguruSink:
    """Callable loguru sink.

    Messages logged from the event loop thread are submitted directly; messages
    from other threads are handed to the loop with ``call_soon_threadsafe``.
    """

    def __init__(self, shipper: LogShipper, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._shipper = shipper
        self._loop = loop or asyncio.get_running_loop()

    def __call__(self, message: Any) -> None:
        if is_own_message(message.record):
            return
        record = message_to_record(message)
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is self._loop:
            self._shipper.submit(record)
        else:
            self._loop.call_soon_threadsafe(self._shipper.submit, record)

    async def complete(self) -> None:
        """Deliver everything submitted so far."""
        await self._shipper.drain()
