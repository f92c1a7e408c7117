"""JSON fetching with retries, status metrics and tracing."""
from __future__ import annotations

import asyncio
import time
from typing import Any, Mapping, Optional, Type

import httpx
import orjson

from mapquery.fetch.session import HttpSession
from mapquery.observability.metrics import MetricsRegistry
from mapquery.observability.tracing import log_fetch_result, log_retry, span
from mapquery.services.errors import ServiceError


async def _do_fetch(
    session: HttpSession,
    url: str,
    *,
    params: Optional[Mapping[str, str]],
    timeout: float,
    metrics: MetricsRegistry,
    max_attempts: int,
    backoff: float,
) -> httpx.Response:
    delay = backoff
    for attempt in range(1, max_attempts + 1):
        try:
            with span(name="fetch", url=url):
                start = time.perf_counter()
                response = await session.get(url, params=params, timeout=timeout)
            elapsed_ms = int((time.perf_counter() - start) * 1000)
            log_fetch_result(
                url=url,
                status=response.status_code,
                bytes_read=len(response.content or b""),
                elapsed_ms=elapsed_ms,
            )
            return response
        except httpx.HTTPError as exc:
            metrics.incr("retries")
            log_retry(attempt=attempt, url=url, reason=str(exc))
            if attempt == max_attempts:
                raise
            await asyncio.sleep(delay)
            delay *= 2
    raise RuntimeError("max_attempts must be at least 1")


async def fetch_json(
    *,
    session: HttpSession,
    url: str,
    metrics: MetricsRegistry,
    params: Optional[Mapping[str, str]] = None,
    timeout: float = 30.0,
    max_attempts: int = 4,
    backoff: float = 1.0,
    error_cls: Type[ServiceError] = ServiceError,
) -> Any:
    """GET ``url`` and decode the JSON body, raising ``error_cls`` on any failure."""
    try:
        response = await _do_fetch(
            session,
            url,
            params=params,
            timeout=timeout,
            metrics=metrics,
            max_attempts=max_attempts,
            backoff=backoff,
        )
    except httpx.HTTPError as exc:
        raise error_cls(f"Request to {url} failed: {exc}") from exc

    metrics.incr(f"http_{response.status_code // 100}xx")
    try:
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        raise error_cls(f"{url} returned HTTP {response.status_code}") from exc
    try:
        return orjson.loads(response.content)
    except orjson.JSONDecodeError as exc:
        raise error_cls(f"{url} returned invalid JSON") from exc
