"""
Custom exceptions for the log shipper.

Delivery errors are never raised out of ``LogShipper.submit``; they reach
observers through ``DeliveryFailed`` events.
"""

from __future__ import annotations


class ConfigError(ValueError):
    """Invalid delivery configuration."""

    pass


class DeliveryError(Exception):
    """Base error for a failed delivery attempt."""

    pass


class UnexpectedStatusError(DeliveryError):
    """Endpoint answered with anything other than the expected status."""

    def __init__(self, status_code: int):
        self.status_code = status_code
        super().__init__(f"Received unexpected status code: {status_code}")


class DeliveryTransportError(DeliveryError):
    """Connection-level failure (DNS, refused, reset)."""

    pass


class DeliveryTimeoutError(DeliveryError):
    """No response headers within the configured timeout."""

    def __init__(self, message: str = "Request timeout while sending logs"):
        super().__init__(message)


class PayloadEncodingError(DeliveryError):
    """Payload could not be serialized to JSON (e.g. a circular reference)."""

    pass


def outcome_label(exc: DeliveryError) -> str:
    """Metric label for a failed attempt."""
    if isinstance(exc, UnexpectedStatusError):
        return "status_error"
    if isinstance(exc, DeliveryTimeoutError):
        return "timeout"
    if isinstance(exc, PayloadEncodingError):
        return "encoding_error"
    return "transport_error"
