"""
logship

Batching HTTP log shipper for log-ingestion endpoints that accept JSON over
POST with an ``Api-Key`` header (New Relic Log API style).

Usage:
    from logship import LogShipper, DeliveryConfig

    async with LogShipper(DeliveryConfig(url="https://...", api_key="...", batch_size=50)) as s:
        s.submit({"message": "hello"})
"""

from .shipper import (
    DeliveryConfig,
    DeliveryError,
    DeliveryFailed,
    DeliverySucceeded,
    LogShipper,
)

__version__ = "1.0.0"
__all__ = [
    "DeliveryConfig",
    "DeliveryError",
    "DeliveryFailed",
    "DeliverySucceeded",
    "LogShipper",
]
