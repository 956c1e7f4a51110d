"""Tracing helpers for list, fetch and parse stages."""
from __future__ import annotations

import contextlib
import time
from typing import Iterator, Optional

import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars


def _logger():
    return structlog.get_logger("catalog.trace")


def set_context(*, bucket: str, load_id: str) -> None:
    bind_contextvars(bucket=bucket, load_id=load_id)
    _logger().debug("trace_context", bucket=bucket, load_id=load_id)


def clear_context() -> None:
    clear_contextvars()


@contextlib.contextmanager
def span(*, name: str, url: Optional[str] = None) -> Iterator[None]:
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = int((time.perf_counter() - start) * 1000)
        _logger().debug("trace_span", span=name, url=url, elapsed_ms=elapsed_ms)


def log_retry(attempt: int, *, url: str, reason: str) -> None:
    _logger().warning("fetch_retry", attempt=attempt, url=url, reason=reason)


def log_fetch_result(*, url: str, status: int, bytes_read: int, elapsed_ms: int) -> None:
    _logger().debug(
        "fetch_result",
        url=url,
        status=status,
        bytes=bytes_read,
        elapsed_ms=elapsed_ms,
    )
