"""
Pytest configuration and fixtures for logship.

Provides cross-platform event loop configuration and a fake ingestion
endpoint served through ``httpx.MockTransport``.
"""

import asyncio
import gzip
import json
import sys
from typing import Any, List, Union

import httpx
import pytest

from logship.shipper import DeliveryConfig, LogShipper

# Set policy *before* pytest-asyncio creates any loops
if sys.platform.startswith("win"):
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())


API_URL = "https://example.com/logs"
API_KEY = "API_KEY"

Reply = Union[int, Exception, tuple]


class FakeEndpoint:
    """Scripted ingestion endpoint.

    Each request consumes the next scripted reply; when the script is empty
    the default status is returned. A reply is a status code, an exception to
    raise, or ``(delay_seconds, status)``.
    """

    def __init__(self, default: int = 202):
        self.default = default
        self.requests: List[httpx.Request] = []
        self._script: List[Reply] = []

    def reply(self, *replies: Reply) -> "FakeEndpoint":
        self._script.extend(replies)
        return self

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        item = self._script.pop(0) if self._script else self.default
        if isinstance(item, Exception):
            raise item
        if isinstance(item, tuple):
            delay, item = item
            await asyncio.sleep(delay)
        return httpx.Response(item, text="OK")

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    @property
    def calls(self) -> int:
        return len(self.requests)

    def payload(self, index: int = -1) -> Any:
        """Decoded JSON body of a captured request."""
        request = self.requests[index]
        body = request.content
        if request.headers.get("Content-Encoding") == "gzip":
            body = gzip.decompress(body)
        return json.loads(body)


@pytest.fixture
def endpoint():
    """Fresh endpoint that accepts everything with 202."""
    return FakeEndpoint()


@pytest.fixture
def make_shipper(endpoint):
    """Factory building a LogShipper wired to the fake endpoint."""

    def _make(**overrides: Any) -> LogShipper:
        cfg = DeliveryConfig(url=overrides.pop("url", API_URL), api_key=API_KEY, **overrides)
        return LogShipper(cfg, transport=endpoint.transport)

    return _make


@pytest.fixture
def outcomes():
    """Collects success records and failure errors from a shipper."""

    class Outcomes:
        def __init__(self):
            self.logged: list = []
            self.errors: list = []
            self.order: list = []

        def attach(self, shipper: LogShipper) -> LogShipper:
            shipper.on_success(self._on_success)
            shipper.on_failure(self._on_failure)
            return shipper

        def _on_success(self, record):
            self.logged.append(record)
            self.order.append("logged")

        def _on_failure(self, error):
            self.errors.append(error)
            self.order.append("error")

        @property
        def messages(self) -> list:
            return [str(e) for e in self.errors]

    return Outcomes()
