"""Debounced "latest request wins" gate for rapid-fire lookups."""
from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Generic, Optional, TypeVar

import structlog

from mapquery.observability.metrics import MetricsRegistry

LOGGER = structlog.get_logger(__name__)

T = TypeVar("T")


class LatestWins(Generic[T]):
    """Runs at most one request at a time; a newer submission cancels the older one.

    The superseded caller gets ``None`` back instead of a stale result.
    """

    def __init__(self, *, delay: float = 0.5, metrics: Optional[MetricsRegistry] = None, name: str = "request") -> None:
        self._delay = delay
        self._metrics = metrics
        self._name = name
        self._task: Optional["asyncio.Task[T]"] = None

    async def _delayed(self, factory: Callable[[], Awaitable[T]]) -> T:
        if self._delay > 0:
            await asyncio.sleep(self._delay)
        return await factory()

    def cancel(self) -> None:
        """Drop any pending or in-flight request."""
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()
            if self._metrics is not None:
                self._metrics.incr("requests_superseded")
            LOGGER.debug("request_superseded", gate=self._name)

    async def submit(self, factory: Callable[[], Awaitable[T]]) -> Optional[T]:
        self.cancel()
        task = asyncio.ensure_future(self._delayed(factory))
        self._task = task
        try:
            return await task
        except asyncio.CancelledError:
            if task.cancelled() and self._task is not task:
                return None
            raise
        finally:
            if self._task is task:
                self._task = None
