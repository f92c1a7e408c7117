"""Per-stage counters for tag extraction, camera arbitration and service calls."""
from __future__ import annotations

import contextlib
import time
from typing import Dict, Iterator, Tuple

import structlog

LOGGER = structlog.get_logger(__name__)

COUNTER_GROUPS: Dict[str, Tuple[str, ...]] = {
    "extraction": ("tags_matched", "tags_rejected", "places_extracted"),
    "viewport": ("directives_applied", "directives_suppressed", "directives_invalid"),
    "services": (
        "requests_superseded",
        "http_2xx",
        "http_3xx",
        "http_4xx",
        "http_5xx",
        "retries",
        "model_queries",
        "model_failures",
        "query_duration_ms",
    ),
}


class MetricsRegistry:
    """Counters for one CLI command or one coordinator session."""

    def __init__(self) -> None:
        self._counters: Dict[str, int] = {
            name: 0 for names in COUNTER_GROUPS.values() for name in names
        }

    def incr(self, name: str, value: int = 1) -> None:
        self._counters[name] = self._counters.get(name, 0) + value

    def get(self, name: str) -> int:
        return self._counters.get(name, 0)

    def snapshot(self) -> Dict[str, int]:
        """Flat copy of every counter."""
        return dict(self._counters)

    def summary(self) -> Dict[str, Dict[str, int]]:
        """Counters grouped by stage, with ad-hoc counters under ``other``.

        The viewport group also reports ``directives_seen``, the number of
        directives the arbiter processed whatever their outcome.
        """
        grouped: Dict[str, Dict[str, int]] = {
            group: {name: self._counters.get(name, 0) for name in names}
            for group, names in COUNTER_GROUPS.items()
        }
        viewport = grouped["viewport"]
        viewport["directives_seen"] = sum(viewport.values())
        known = {name for names in COUNTER_GROUPS.values() for name in names}
        extra = {name: value for name, value in self._counters.items() if name not in known}
        if extra:
            grouped["other"] = extra
        return grouped


@contextlib.contextmanager
def record_duration(registry: MetricsRegistry, metric_name: str) -> Iterator[None]:
    """Add the block's wall time in milliseconds to ``metric_name``."""
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = int((time.perf_counter() - start) * 1000)
        registry.incr(metric_name, elapsed_ms)
        LOGGER.info("timer_stop", metric=metric_name, duration_ms=elapsed_ms)
