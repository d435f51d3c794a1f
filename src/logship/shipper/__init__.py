"""Log shipper delivery engine

Submit → buffer → deliver pipeline with:
- BatchQueue (size/time flushing)
- DeliveryAttempt (httpx POST, gzip, per-attempt timeout)
- RetryPolicy (sequential retry chains, optional backoff)
- InFlightRegistry (outstanding chains, drain support)
- OutcomeBus (DeliverySucceeded / DeliveryFailed events)
- LogShipper orchestration
- Prometheus metrics
"""

from .types import DeliveryConfig, Record, Payload, EXPECTED_STATUS_CODE, DEFAULT_TIMEOUT_MS
from .errors import (
    ConfigError,
    DeliveryError,
    UnexpectedStatusError,
    DeliveryTransportError,
    DeliveryTimeoutError,
    PayloadEncodingError,
)
from .events import DeliverySucceeded, DeliveryFailed, OutcomeBus, OutcomeEvent
from .attempt import DeliveryAttempt, encode_payload
from .retry import RetryPolicy
from .inflight import InFlightRegistry
from .queue import BatchQueue
from .engine import LogShipper

__all__ = [
    # types
    "DeliveryConfig",
    "Record",
    "Payload",
    "EXPECTED_STATUS_CODE",
    "DEFAULT_TIMEOUT_MS",
    # errors
    "ConfigError",
    "DeliveryError",
    "UnexpectedStatusError",
    "DeliveryTransportError",
    "DeliveryTimeoutError",
    "PayloadEncodingError",
    # events
    "DeliverySucceeded",
    "DeliveryFailed",
    "OutcomeBus",
    "OutcomeEvent",
    # runtime
    "DeliveryAttempt",
    "encode_payload",
    "RetryPolicy",
    "InFlightRegistry",
    "BatchQueue",
    "LogShipper",
]
