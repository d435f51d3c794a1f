"""
Shipper metrics, registered in the Prometheus global REGISTRY on import.
Expose them with ``prometheus_client.start_http_server`` (see ``logship ship --metrics-port``).
"""

from prometheus_client import Counter, Gauge, Histogram


# --- Delivery metrics ---

DELIVERY_ATTEMPTS_TOTAL = Counter(
    "logship_delivery_attempts_total",
    "Total HTTP delivery attempts",
    ["outcome"],
)

DELIVERY_LATENCY_MS = Histogram(
    "logship_delivery_latency_ms",
    "Delivery attempt latency in milliseconds",
    buckets=[1, 2.5, 5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000],
)

CHAINS_TOTAL = Counter(
    "logship_chains_total",
    "Delivery chains by terminal outcome",
    ["outcome"],
)

INFLIGHT_CHAINS = Gauge(
    "logship_inflight_chains",
    "Delivery chains currently outstanding",
)

# --- Record/batch metrics ---

RECORDS_DELIVERED_TOTAL = Counter(
    "logship_records_delivered_total",
    "Records accepted by the endpoint",
)

RECORDS_DROPPED_TOTAL = Counter(
    "logship_records_dropped_total",
    "Records dropped after retries were exhausted",
)

FLUSHES_TOTAL = Counter(
    "logship_flushes_total",
    "Non-empty batch flushes by trigger",
    ["trigger"],
)


class MetricsRegistry:
    """Centralized access to shipper metrics.

    Used by the delivery engine and the CLI to record and read metrics.
    """

    delivery_attempts_total = DELIVERY_ATTEMPTS_TOTAL
    delivery_latency_ms = DELIVERY_LATENCY_MS
    chains_total = CHAINS_TOTAL
    inflight_chains = INFLIGHT_CHAINS
    records_delivered_total = RECORDS_DELIVERED_TOTAL
    records_dropped_total = RECORDS_DROPPED_TOTAL
    flushes_total = FLUSHES_TOTAL


# Singleton instance
metrics_registry = MetricsRegistry()
