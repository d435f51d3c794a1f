from __future__ import annotations

import asyncio
import gzip
import json
import sys
from typing import Any, Dict, Iterator, Optional

import typer
from loguru import logger
from prometheus_client import start_http_server

from .settings import get_settings
from .shipper import DeliveryConfig, DeliveryFailed, LogShipper, OutcomeEvent
from .shipper.errors import ConfigError

app = typer.Typer(help="logship: batching HTTP log shipper")

# ---------------------------
# Common options
# ---------------------------


def url_opt() -> Optional[str]:
    return typer.Option(None, "--url", help="Ingestion endpoint (env: LOGSHIP_URL)")


def api_key_opt() -> Optional[str]:
    return typer.Option(None, "--api-key", help="Api-Key header value (env: LOGSHIP_API_KEY)")


def _build_config(**overrides: Any) -> DeliveryConfig:
    try:
        return get_settings().to_delivery_config(**overrides)
    except ConfigError as e:
        raise typer.BadParameter(str(e))


def iter_ndjson(path: str) -> Iterator[Dict[str, Any]]:
    """Yield JSON objects from an NDJSON file ('-' = stdin, .gz ok). Bad lines are skipped."""
    if path == "-":
        stream = sys.stdin
    elif path.endswith(".gz"):
        stream = gzip.open(path, "rt", encoding="utf-8")
    else:
        stream = open(path, "r", encoding="utf-8")

    try:
        for lineno, line in enumerate(stream, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                obj = json.loads(line)
            except json.JSONDecodeError as e:
                logger.warning(f"Skipping line {lineno}: invalid JSON ({e.msg})")
                continue
            if not isinstance(obj, dict):
                logger.warning(f"Skipping line {lineno}: expected a JSON object")
                continue
            yield obj
    finally:
        if stream is not sys.stdin:
            stream.close()


# ---------------------------
# Commands
# ---------------------------


@app.command()
def ship(
    path: str = typer.Argument("-", help="NDJSON file path or '-' for stdin (.gz ok)"),
    url: Optional[str] = url_opt(),
    api_key: Optional[str] = api_key_opt(),
    timeout_ms: Optional[int] = typer.Option(None, "--timeout-ms", help="Per-attempt timeout"),
    retries: Optional[int] = typer.Option(None, "--retries", help="Retries after a failure"),
    compression: Optional[bool] = typer.Option(
        None, "--compression/--no-compression", help="gzip request bodies"
    ),
    batch_size: Optional[int] = typer.Option(None, "--batch-size", help="Flush every N records"),
    batch_timeout_ms: Optional[int] = typer.Option(
        None, "--batch-timeout-ms", help="Flush this long after the first buffered record"
    ),
    metrics_port: Optional[int] = typer.Option(
        None, "--metrics-port", help="Expose Prometheus metrics on this port"
    ),
):
    """Ship NDJSON records to the ingestion endpoint and wait for delivery."""
    cfg = _build_config(
        url=url,
        api_key=api_key,
        timeout_ms=timeout_ms,
        retries=retries,
        compression=compression,
        batch_size=batch_size,
        batch_timeout_ms=batch_timeout_ms,
    )

    port = metrics_port if metrics_port is not None else get_settings().METRICS_PORT
    if port:
        start_http_server(port)
        logger.info(f"Prometheus metrics on :{port}")

    summary = asyncio.run(_ship(cfg, path))
    typer.echo(json.dumps(summary, indent=2))
    if summary["dropped"]:
        raise typer.Exit(code=1)


async def _ship(cfg: DeliveryConfig, path: str) -> Dict[str, int]:
    summary = {"submitted": 0, "delivered": 0, "failed_attempts": 0, "dropped": 0}

    def count(event: OutcomeEvent) -> None:
        if isinstance(event, DeliveryFailed):
            summary["failed_attempts"] += 1
            if event.terminal:
                summary["dropped"] += event.size
        else:
            summary["delivered"] += 1

    async with LogShipper(cfg) as shipper:
        shipper.subscribe(count)
        for record in iter_ndjson(path):
            shipper.submit(record)
            summary["submitted"] += 1
            # let timer flushes and in-flight chains progress on large inputs
            await asyncio.sleep(0)
        logger.info(f"Submitted {summary['submitted']} record(s), draining")

    if summary["dropped"]:
        logger.error(f"{summary['dropped']} record(s) could not be delivered")
    else:
        logger.success(f"Delivered {summary['delivered']} record(s)")
    return summary


@app.command("config")
def show_config():
    """Print the resolved configuration (API key masked)."""
    s = get_settings()
    data = s.model_dump()
    key = data.get("API_KEY") or ""
    data["API_KEY"] = (key[:4] + "****") if len(key) > 4 else ("****" if key else "")
    typer.echo(json.dumps(data, indent=2))


if __name__ == "__main__":
    app()
