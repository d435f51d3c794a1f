"""
Delivery outcome events.

Every delivery attempt ends in exactly one tagged event: ``DeliverySucceeded``
once per delivered record, or ``DeliveryFailed`` once per failed attempt
(retried or terminal). Events are published on a per-engine ``OutcomeBus``.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Union

from loguru import logger

from .errors import DeliveryError
from .inflight import InFlightRegistry
from .types import Record


@dataclass(frozen=True)
class DeliverySucceeded:
    """One record accepted by the endpoint.

    Attributes:
        record: The record as transmitted (timestamp included)
        attempt: 0-based attempt number that succeeded
    """

    record: Record
    attempt: int = 0


@dataclass(frozen=True)
class DeliveryFailed:
    """One failed attempt.

    Attributes:
        error: What went wrong (status, transport or timeout)
        attempt: 0-based attempt number that failed
        terminal: True when no further attempt will be made
        size: Number of records carried by the failed payload
    """

    error: DeliveryError
    attempt: int = 0
    terminal: bool = True
    size: int = 1


OutcomeEvent = Union[DeliverySucceeded, DeliveryFailed]
OutcomeSubscriber = Callable[[OutcomeEvent], Optional[Awaitable[None]]]


class OutcomeBus:
    """In-process pub/sub for delivery outcomes.

    Subscribers may be plain callables or coroutine functions. Plain callables
    run inline; coroutines are scheduled as observer tasks on the registry, so
    a slow observer never delays the next attempt of the chain that published,
    while a drain still waits for it. One subscriber's failure does not affect
    the others or the delivery chain.

    Example:
        bus = OutcomeBus()

        async def on_outcome(event: OutcomeEvent):
            if isinstance(event, DeliveryFailed) and event.terminal:
                await page_someone(event.error)

        bus.subscribe(on_outcome)
    """

    def __init__(self, registry: Optional[InFlightRegistry] = None) -> None:
        self._subs: list[OutcomeSubscriber] = []
        self._registry = registry if registry is not None else InFlightRegistry()

    @property
    def registry(self) -> InFlightRegistry:
        return self._registry

    def subscribe(self, callback: OutcomeSubscriber) -> None:
        if callback not in self._subs:
            self._subs.append(callback)
            logger.debug(f"Outcome subscriber added (total: {len(self._subs)})")

    def unsubscribe(self, callback: OutcomeSubscriber) -> None:
        """Remove a subscriber. No-op if it was never added."""
        try:
            self._subs.remove(callback)
            logger.debug(f"Outcome subscriber removed (total: {len(self._subs)})")
        except ValueError:
            pass

    def publish(self, event: OutcomeEvent) -> None:
        """Deliver ``event`` to every subscriber in registration order. Never blocks."""
        if not self._subs:
            return

        # Copy so subscribers may unsubscribe while being called
        for callback in list(self._subs):
            try:
                result = callback(event)
            except Exception as exc:
                self._log_failure(callback, exc)
                continue
            if inspect.isawaitable(result):
                self._registry.track_observer(
                    self._observe(callback, result),
                    name=f"logship-observer-{type(event).__name__}",
                )

    async def _observe(self, callback: OutcomeSubscriber, result: Awaitable[None]) -> None:
        try:
            await result
        except Exception as exc:
            self._log_failure(callback, exc)

    @staticmethod
    def _log_failure(callback: OutcomeSubscriber, exc: Exception) -> None:
        logger.opt(exception=exc).error(
            f"Outcome subscriber {callback!r} raised {type(exc).__name__}: {exc}"
        )

    @property
    def subscriber_count(self) -> int:
        return len(self._subs)
