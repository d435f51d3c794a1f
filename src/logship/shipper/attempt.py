"""
Single HTTP delivery attempt.

Posts one payload (a record or a batch) to the ingestion endpoint and
classifies the result. Only the response headers are awaited; the body is
discarded.
"""

from __future__ import annotations

import asyncio
import gzip
import json
from time import monotonic

import httpx

from ..metrics import metrics_registry
from .errors import (
    DeliveryError,
    DeliveryTimeoutError,
    DeliveryTransportError,
    PayloadEncodingError,
    UnexpectedStatusError,
    outcome_label,
)
from .types import EXPECTED_STATUS_CODE, DeliveryConfig, Payload


def encode_payload(payload: Payload, compression: bool = False) -> bytes:
    """JSON-encode ``payload`` compactly, gzip it when ``compression`` is set.

    Values JSON has no type for (datetimes, UUIDs, paths) are written as their
    ``str()``. ``mtime=0`` keeps the gzip header independent of wall-clock
    time, so the compressed body depends only on the JSON bytes.

    Raises:
        PayloadEncodingError: The payload still cannot be serialized
    """
    try:
        text = json.dumps(payload, separators=(",", ":"), ensure_ascii=False, default=str)
    except (TypeError, ValueError) as exc:
        raise PayloadEncodingError(f"Could not encode log payload: {exc}") from exc
    body = text.encode("utf-8")
    if compression:
        return gzip.compress(body, mtime=0)
    return body


def build_headers(config: DeliveryConfig) -> dict[str, str]:
    headers = {
        "Api-Key": config.api_key,
        "Content-Type": "application/json",
    }
    if config.compression:
        headers["Content-Encoding"] = "gzip"
    return headers


class DeliveryAttempt:
    """Performs one POST per call to :meth:`send`.

    The client is owned by the caller (``LogShipper``) and reused across
    attempts.
    """

    def __init__(self, config: DeliveryConfig, client: httpx.AsyncClient):
        self._cfg = config
        self._client = client
        self._headers = build_headers(config)

    async def send(self, payload: Payload) -> int:
        """Deliver ``payload`` once.

        Returns:
            The (expected) status code on success

        Raises:
            UnexpectedStatusError: Endpoint returned a status other than 202
            DeliveryTimeoutError: No response headers within the timeout
            DeliveryTransportError: Connection-level failure
            PayloadEncodingError: Payload is not serializable
        """
        try:
            body = encode_payload(payload, self._cfg.compression)
        except PayloadEncodingError as exc:
            metrics_registry.delivery_attempts_total.labels(outcome=outcome_label(exc)).inc()
            raise
        request = self._client.build_request(
            "POST", self._cfg.url, content=body, headers=self._headers
        )

        t0 = monotonic()
        try:
            status = await asyncio.wait_for(self._exchange(request), timeout=self._cfg.timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            self._record(t0, "timeout")
            raise DeliveryTimeoutError() from exc
        except httpx.TransportError as exc:
            self._record(t0, "transport_error")
            raise DeliveryTransportError(str(exc) or type(exc).__name__) from exc

        if status != EXPECTED_STATUS_CODE:
            err: DeliveryError = UnexpectedStatusError(status)
            self._record(t0, outcome_label(err))
            raise err

        self._record(t0, "success")
        return status

    async def _exchange(self, request: httpx.Request) -> int:
        response = await self._client.send(request, stream=True)
        try:
            return response.status_code
        finally:
            await response.aclose()

    @staticmethod
    def _record(t0: float, outcome: str) -> None:
        metrics_registry.delivery_attempts_total.labels(outcome=outcome).inc()
        metrics_registry.delivery_latency_ms.observe((monotonic() - t0) * 1000.0)
