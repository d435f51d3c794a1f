from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from .shipper.types import DEFAULT_TIMEOUT_MS, DeliveryConfig


class ShipperSettings(BaseSettings):
    """Environment-driven settings (``LOGSHIP_*`` variables or ``.env``)."""

    model_config = SettingsConfigDict(env_prefix="LOGSHIP_", env_file=".env", extra="ignore")

    URL: Optional[str] = None
    API_KEY: str = ""
    TIMEOUT_MS: int = DEFAULT_TIMEOUT_MS
    RETRIES: int = 0
    COMPRESSION: bool = False
    BATCH_SIZE: Optional[int] = None
    BATCH_TIMEOUT_MS: int = 0
    RETRY_BACKOFF_MS: int = 0
    METRICS_PORT: Optional[int] = None

    def to_delivery_config(self, **overrides) -> DeliveryConfig:
        """Build a ``DeliveryConfig``; ``None`` overrides are ignored."""
        values = {
            "url": self.URL or "",
            "api_key": self.API_KEY,
            "timeout_ms": self.TIMEOUT_MS,
            "retries": self.RETRIES,
            "compression": self.COMPRESSION,
            "batch_size": self.BATCH_SIZE,
            "batch_timeout_ms": self.BATCH_TIMEOUT_MS,
            "retry_backoff_ms": self.RETRY_BACKOFF_MS,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return DeliveryConfig(**values)


@lru_cache()
def get_settings() -> ShipperSettings:
    return ShipperSettings()
