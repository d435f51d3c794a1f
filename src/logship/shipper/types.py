from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Union
from urllib.parse import urlparse

from .errors import ConfigError

Record = Dict[str, Any]
Payload = Union[Record, List[Record]]

DEFAULT_TIMEOUT_MS = 5000
EXPECTED_STATUS_CODE = 202


@dataclass(frozen=True)
class DeliveryConfig:
    """Immutable delivery settings, fixed at construction.

    Attributes:
        url: Ingestion endpoint (http or https)
        api_key: Sent verbatim as the ``Api-Key`` header
        timeout_ms: Per-attempt wait for response headers (0 or None = 5000)
        retries: Extra attempts after the first failure (0 = no retries)
        compression: gzip the request body
        batch_size: Flush once this many records are buffered (None = never)
        batch_timeout_ms: Flush this long after the first buffered record (0 = never)
        retry_backoff_ms: Delay before the first retry (0 = retry immediately)
        retry_backoff_max_ms: Cap for the exponential retry delay
        retry_jitter: Randomize retry delays into 50-100% of the computed value
    """

    url: str
    api_key: str
    timeout_ms: Optional[int] = DEFAULT_TIMEOUT_MS
    retries: int = 0
    compression: bool = False
    batch_size: Optional[int] = None
    batch_timeout_ms: int = 0
    retry_backoff_ms: int = 0
    retry_backoff_max_ms: int = 30_000
    retry_jitter: bool = False

    def __post_init__(self) -> None:
        parsed = urlparse(self.url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ConfigError(
                f"Invalid url '{self.url}'. "
                "Expected an http(s) URL like https://log-api.newrelic.com/log/v1"
            )
        if not self.timeout_ms:
            object.__setattr__(self, "timeout_ms", DEFAULT_TIMEOUT_MS)
        if self.timeout_ms < 0:
            raise ConfigError("timeout_ms must be >= 0")
        for name in ("retries", "batch_timeout_ms", "retry_backoff_ms", "retry_backoff_max_ms"):
            if getattr(self, name) < 0:
                raise ConfigError(f"{name} must be >= 0")
        if self.batch_size is not None and self.batch_size < 0:
            raise ConfigError("batch_size must be >= 0")

    @property
    def batching(self) -> bool:
        """True when records are buffered instead of sent one by one."""
        return bool(
            (self.batch_size and self.batch_size > 1)
            or (self.batch_timeout_ms and self.batch_timeout_ms > 0)
        )

    @property
    def timeout(self) -> float:
        """Per-attempt timeout in seconds."""
        return self.timeout_ms / 1000.0

    @property
    def https(self) -> bool:
        return urlparse(self.url).scheme == "https"


def now_ms() -> int:
    return int(time.time() * 1000)


def stamp(record: Mapping[str, Any]) -> Record:
    """Copy ``record`` and make sure it carries a numeric ``timestamp``."""
    out = dict(record)
    ts = out.get("timestamp")
    if isinstance(ts, bool) or not isinstance(ts, (int, float)):
        out["timestamp"] = now_ms()
    return out


def records_of(payload: Payload) -> List[Record]:
    return payload if isinstance(payload, list) else [payload]
