"""
Demo script for LogShipper.

Ships records in batches to an in-process endpoint that rejects every third
request, showing retries, per-attempt failure callbacks, and the drain on exit.
"""

import asyncio
import itertools

import httpx
from loguru import logger

from logship import DeliveryConfig, LogShipper

_requests = itertools.count(1)


async def flaky_endpoint(request: httpx.Request) -> httpx.Response:
    """Accepts with 202, except every third request gets a 503."""
    await asyncio.sleep(0.01)
    n = next(_requests)
    if n % 3 == 0:
        return httpx.Response(503)
    return httpx.Response(202)


async def main():
    cfg = DeliveryConfig(
        url="https://log-api.example.com/log/v1",
        api_key="demo-key",
        batch_size=50,
        batch_timeout_ms=200,
        retries=2,
        retry_backoff_ms=50,
        compression=True,
    )

    delivered = 0

    def on_success(record):
        nonlocal delivered
        delivered += 1

    async def on_failure(error):
        logger.warning(f"⚠️  Attempt failed: {error}")

    async with LogShipper(cfg, transport=httpx.MockTransport(flaky_endpoint)) as shipper:
        shipper.on_success(on_success)
        shipper.on_failure(on_failure)

        logger.info("🚀 Starting shipper demo - submitting 1,000 records")
        for i in range(1_000):
            shipper.submit({"message": f"event {i}", "service": "demo"})
            if i % 250 == 0:
                logger.info(
                    f"Progress: {i}/1000 | "
                    f"Pending: {shipper.pending} | "
                    f"In flight: {shipper.in_flight}"
                )
                await asyncio.sleep(0)

        logger.info("⏳ Draining...")

    logger.info(f"✅ Shipper demo complete, delivered={delivered}")


if __name__ == "__main__":
    asyncio.run(main())
