from __future__ import annotations

from typing import Any, Awaitable, Callable, Mapping, Optional

import httpx
from loguru import logger

from .attempt import DeliveryAttempt
from .errors import DeliveryError
from .events import DeliveryFailed, DeliverySucceeded, OutcomeBus, OutcomeEvent, OutcomeSubscriber
from .inflight import InFlightRegistry
from .queue import BatchQueue, FlushTrigger
from .retry import RetryPolicy
from .types import DeliveryConfig, Record, stamp

SuccessCallback = Callable[[Record], Optional[Awaitable[None]]]
FailureCallback = Callable[[DeliveryError], Optional[Awaitable[None]]]


class LogShipper:
    """
    Batching HTTP log shipper.

    Usage:

        cfg = DeliveryConfig(url="https://log-api.newrelic.com/log/v1", api_key="...",
                             batch_size=100, batch_timeout_ms=1000, retries=3)
        async with LogShipper(cfg) as shipper:
            shipper.on_failure(lambda err: print("delivery failed:", err))
            shipper.submit({"message": "hello"})
        # drained and closed on exit

    ``submit`` is synchronous and must be called from the event loop thread.
    Delivery problems are reported to observers only; they never raise out of
    ``submit``.
    """

    def __init__(
        self,
        config: DeliveryConfig,
        *,
        client: Optional[httpx.AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._cfg = config
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            transport=transport, timeout=httpx.Timeout(config.timeout)
        )
        self._closed = False

        self._registry = InFlightRegistry()
        self._bus = OutcomeBus(self._registry)
        self._retry = RetryPolicy(
            DeliveryAttempt(config, self._client),
            self._registry,
            self._bus,
            retries=config.retries,
            initial_backoff_ms=config.retry_backoff_ms,
            max_backoff_ms=config.retry_backoff_max_ms,
            jitter=config.retry_jitter,
        )
        self._queue = BatchQueue(
            self._retry.attempt,
            batch_size=config.batch_size,
            batch_timeout_ms=config.batch_timeout_ms,
        )

    # --------------- context management

    async def __aenter__(self) -> "LogShipper":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    # --------------- public API

    @property
    def config(self) -> DeliveryConfig:
        return self._cfg

    @property
    def batching(self) -> bool:
        return self._cfg.batching

    @property
    def pending(self) -> int:
        """Records buffered and not yet flushed."""
        return self._queue.pending

    @property
    def in_flight(self) -> int:
        """Delivery chains started and not yet settled."""
        return len(self._registry)

    @property
    def queue(self) -> BatchQueue:
        return self._queue

    @property
    def registry(self) -> InFlightRegistry:
        return self._registry

    def submit(self, record: Mapping[str, Any]) -> None:
        """Accept one record for delivery (fire-and-forget)."""
        if not isinstance(record, Mapping):
            raise TypeError(f"record must be a mapping, got {type(record).__name__}")
        if self._closed:
            logger.warning("LogShipper is closed; dropping record")
            return

        info = stamp(record)
        if self._cfg.batching:
            self._queue.push(info)
        else:
            self._retry.attempt(info)

    def flush(self, trigger: FlushTrigger = "manual") -> int:
        """Start delivery of everything buffered. Returns the number of records flushed."""
        return self._queue.flush(trigger)

    async def drain(self) -> None:
        """Flush and wait until nothing is buffered and no chain is in flight.

        Chains can start while we wait (timer flushes, submissions from
        observers), so keep going until a pass finds nothing buffered and no
        chain or coroutine observer outstanding.
        """
        while True:
            flushed = self._queue.flush("drain")
            if not flushed and self._registry.idle:
                return
            logger.debug(
                f"Draining: flushed={flushed} in_flight={len(self._registry)} "
                f"observers={self._registry.observers}"
            )
            await self._registry.wait()

    async def aclose(self) -> None:
        """Drain, then release the HTTP client. Safe to call multiple times."""
        if self._closed:
            return
        await self.drain()
        self._closed = True
        if self._owns_client:
            await self._client.aclose()

    # --------------- observers

    def subscribe(self, callback: OutcomeSubscriber) -> None:
        """Receive every ``DeliverySucceeded`` / ``DeliveryFailed`` event."""
        self._bus.subscribe(callback)

    def unsubscribe(self, callback: OutcomeSubscriber) -> None:
        self._bus.unsubscribe(callback)

    def on_success(self, callback: SuccessCallback) -> OutcomeSubscriber:
        """Call ``callback(record)`` once per delivered record.

        Returns the underlying subscriber, usable with :meth:`unsubscribe`.
        """

        def _on_event(event: OutcomeEvent):
            if isinstance(event, DeliverySucceeded):
                return callback(event.record)
            return None

        self._bus.subscribe(_on_event)
        return _on_event

    def on_failure(self, callback: FailureCallback) -> OutcomeSubscriber:
        """Call ``callback(error)`` once per failed attempt, retried or terminal.

        Returns the underlying subscriber, usable with :meth:`unsubscribe`.
        """

        def _on_event(event: OutcomeEvent):
            if isinstance(event, DeliveryFailed):
                return callback(event.error)
            return None

        self._bus.subscribe(_on_event)
        return _on_event
