"""Lightweight in-process metrics for a catalog load."""
from __future__ import annotations

import contextlib
import time
from collections import defaultdict
from typing import Dict, Iterator, Mapping, Optional

import structlog

LOGGER = structlog.get_logger(__name__)


class MetricsRegistry:
    """Holds mutable counters for the current process."""

    def __init__(self) -> None:
        self._counters: Dict[str, int] = defaultdict(int)
        self._register_defaults()

    def _register_defaults(self) -> None:
        defaults = [
            "objects_listed",
            "list_pages",
            "metadata_files",
            "datasets_valid",
            "datasets_invalid",
            "fetch_failures",
            "retries",
            "duplicates_removed",
            "load_duration_ms",
        ]
        for key in defaults:
            self._counters[key] = 0

    def incr(self, name: str, value: int = 1) -> None:
        """Increment the named counter by the supplied value."""
        self._counters[name] += value

    def set(self, name: str, value: int) -> None:
        """Overwrite a gauge-like counter, e.g. the last dedup pass size."""
        self._counters[name] = value

    def reset(self, values: Optional[Mapping[str, int]] = None) -> None:
        """Zero every counter, then apply ``values`` if given."""
        self._counters.clear()
        self._register_defaults()
        if values:
            self._counters.update(values)

    def get(self, name: str) -> int:
        """Return the current value for the counter, defaulting to zero."""
        return self._counters.get(name, 0)

    def snapshot(self) -> Dict[str, int]:
        """Return a shallow copy of all counters for reporting."""
        return dict(self._counters)


@contextlib.contextmanager
def record_duration(registry: MetricsRegistry, metric_name: str) -> Iterator[None]:
    """Measure elapsed time for a block and emit it when done."""
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = int((time.perf_counter() - start) * 1000)
        registry.incr(metric_name, elapsed_ms)
        LOGGER.info("timer_stop", metric=metric_name, duration_ms=elapsed_ms)
