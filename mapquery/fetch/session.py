"""Factories for shared httpx sessions used by the service clients."""
from __future__ import annotations

import contextlib
from typing import AsyncIterator, Dict, Mapping, Optional

import httpx


class HttpSession:
    """Thin wrapper over an ``httpx.AsyncClient`` so tests can swap the transport."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def get(
        self,
        url: str,
        *,
        params: Optional[Mapping[str, str]] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: float = 30.0,
    ) -> httpx.Response:
        return await self._client.get(url, params=params, headers=headers, timeout=timeout)


@contextlib.asynccontextmanager
async def create_http_session(
    *,
    user_agent: str,
    timeout: float,
    max_connections: int,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> AsyncIterator[HttpSession]:
    """Yield a configured `HttpSession` for the duration of the context."""
    headers = {"User-Agent": user_agent, "Accept": "application/json"}
    limits = httpx.Limits(max_connections=max_connections, max_keepalive_connections=max_connections)
    async with httpx.AsyncClient(headers=headers, limits=limits, timeout=timeout, transport=transport) as client:
        yield HttpSession(client)
