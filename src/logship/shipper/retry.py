from __future__ import annotations

import asyncio
import itertools
import random

from loguru import logger

from ..metrics import metrics_registry
from .attempt import DeliveryAttempt
from .errors import DeliveryError, PayloadEncodingError
from .events import DeliveryFailed, DeliverySucceeded, OutcomeBus
from .inflight import InFlightRegistry
from .types import Payload, records_of


class RetryPolicy:
    """Drives delivery chains: the first attempt plus up to ``retries`` retries.

    Attempts within a chain are sequential. Each failed attempt is published
    as ``DeliveryFailed`` as soon as it is observed and the next attempt starts
    right away; coroutine observers run on their own and never gate the retry.
    A payload that fails once and then succeeds yields one failure followed by
    the successes. Chain numbers are per policy, so per engine.
    """

    def __init__(
        self,
        attempt: DeliveryAttempt,
        registry: InFlightRegistry,
        bus: OutcomeBus,
        *,
        retries: int = 0,
        initial_backoff_ms: int = 0,
        max_backoff_ms: int = 30_000,
        backoff_multiplier: float = 2.0,
        jitter: bool = False,
    ):
        self._attempt = attempt
        self._registry = registry
        self._bus = bus
        self._ids = itertools.count(1)
        self.retries = retries
        self.initial_backoff_ms = initial_backoff_ms
        self.max_backoff_ms = max_backoff_ms
        self.backoff_multiplier = backoff_multiplier
        self.jitter = jitter

    def next_backoff_ms(self, attempt: int) -> int:
        """Delay before retry number ``attempt`` (1-based). 0 means retry at once."""
        if self.initial_backoff_ms <= 0:
            return 0
        base = self.initial_backoff_ms * (self.backoff_multiplier ** max(0, attempt - 1))
        delay = min(base, self.max_backoff_ms)
        if self.jitter:
            delay = random.uniform(delay / 2, delay)
        return int(delay)

    def attempt(self, payload: Payload) -> asyncio.Task:
        """Start one delivery chain for ``payload`` and register it as in flight."""
        chain_id = next(self._ids)
        return self._registry.track(self._run(payload, chain_id), name=f"logship-chain-{chain_id}")

    async def _run(self, payload: Payload, chain_id: int) -> None:
        records = records_of(payload)
        logger.debug(f"Chain #{chain_id} started ({len(records)} record(s))")

        retry_count = 0
        while True:
            try:
                await self._attempt.send(payload)
            except DeliveryError as exc:
                # re-encoding the same payload fails the same way
                terminal = retry_count >= self.retries or isinstance(exc, PayloadEncodingError)
                if terminal:
                    logger.error(
                        f"Chain #{chain_id} gave up after {retry_count + 1} attempt(s), "
                        f"dropping {len(records)} record(s): {exc}"
                    )
                    metrics_registry.chains_total.labels(outcome="failure").inc()
                    metrics_registry.records_dropped_total.inc(len(records))
                else:
                    logger.warning(
                        f"Chain #{chain_id} attempt {retry_count + 1}/{self.retries + 1} "
                        f"failed, retrying: {exc}"
                    )
                self._bus.publish(
                    DeliveryFailed(
                        error=exc, attempt=retry_count, terminal=terminal, size=len(records)
                    )
                )
                if terminal:
                    return
                retry_count += 1
                delay_ms = self.next_backoff_ms(retry_count)
                if delay_ms:
                    await asyncio.sleep(delay_ms / 1000.0)
                continue

            metrics_registry.chains_total.labels(outcome="success").inc()
            metrics_registry.records_delivered_total.inc(len(records))
            logger.debug(
                f"Chain #{chain_id} delivered {len(records)} record(s) "
                f"on attempt {retry_count + 1}"
            )
            for record in records:
                self._bus.publish(DeliverySucceeded(record=record, attempt=retry_count))
            return
