"""HTTP GET with retries, tracing and metrics."""
from __future__ import annotations

import asyncio
import time
from typing import Dict, Optional

import httpx

from catalog.observability.metrics import MetricsRegistry
from catalog.observability.tracing import log_fetch_result, log_retry, span


async def fetch_with_retries(
    client: httpx.AsyncClient,
    url: str,
    *,
    metrics: MetricsRegistry,
    params: Optional[Dict[str, str]] = None,
    attempts: int = 4,
    backoff: float = 1.0,
) -> httpx.Response:
    """GET ``url``, retrying transport errors and 5xx responses with backoff.

    The last response (or transport error) is returned or raised once the
    attempts are exhausted; 4xx responses are returned immediately.
    """
    if attempts < 1:
        raise ValueError("attempts must be at least 1")
    delay = backoff
    for attempt in range(1, attempts + 1):
        try:
            with span(name="fetch", url=url):
                start = time.perf_counter()
                response = await client.get(url, params=params)
            elapsed_ms = int((time.perf_counter() - start) * 1000)
            log_fetch_result(
                url=url,
                status=response.status_code,
                bytes_read=len(response.content or b""),
                elapsed_ms=elapsed_ms,
            )
        except httpx.TransportError as exc:
            if attempt == attempts:
                raise
            reason = str(exc) or type(exc).__name__
        else:
            if response.status_code < 500 or attempt == attempts:
                return response
            reason = f"HTTP {response.status_code}"
        metrics.incr("retries")
        log_retry(attempt, url=url, reason=reason)
        await asyncio.sleep(delay)
        delay *= 2
    raise RuntimeError(f"No response for {url}")  # pragma: no cover
