"""Driving routes from an OSRM-compatible routing service."""
from __future__ import annotations

from typing import Dict, List, Optional

import structlog

from mapquery.fetch.fetcher import fetch_json
from mapquery.fetch.session import HttpSession
from mapquery.models import RouteData
from mapquery.normalize.geo import Coordinate, is_valid_coordinate
from mapquery.observability.metrics import MetricsRegistry
from mapquery.services.errors import RouteError

LOGGER = structlog.get_logger(__name__)

DEFAULT_OSRM_URL = "https://router.project-osrm.org/route/v1/driving"


def _path_from_geojson(coordinates: List[List[float]]) -> List[Coordinate]:
    """GeoJSON positions are [lng, lat]; keep only usable points."""
    path: List[Coordinate] = []
    for position in coordinates:
        if len(position) < 2:
            continue
        lng, lat = position[0], position[1]
        if is_valid_coordinate(lat, lng):
            path.append(Coordinate(latitude=float(lat), longitude=float(lng)))
    return path


def route_from_payload(payload: Dict[str, object]) -> Optional[RouteData]:
    routes = payload.get("routes") or []
    if not routes:
        return None
    first = routes[0]
    geometry = first.get("geometry") or {}
    return RouteData(
        path=_path_from_geojson(geometry.get("coordinates", [])),
        distance_meters=float(first.get("distance", 0.0)),
        duration_seconds=float(first.get("duration", 0.0)),
    )


class RouteClient:
    """Fetches the fastest driving route between two points."""

    def __init__(
        self,
        session: HttpSession,
        *,
        metrics: MetricsRegistry,
        base_url: str = DEFAULT_OSRM_URL,
        timeout: float = 30.0,
        max_attempts: int = 4,
        backoff: float = 1.0,
    ) -> None:
        self._session = session
        self._metrics = metrics
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._max_attempts = max_attempts
        self._backoff = backoff

    async def fetch_route(self, start: Coordinate, end: Coordinate) -> Optional[RouteData]:
        """Return the first route, or None when the service found none."""
        for point in (start, end):
            if not point.is_valid:
                raise RouteError("Route endpoints must be valid coordinates")
        url = f"{self._base_url}/{start.longitude},{start.latitude};{end.longitude},{end.latitude}"
        payload = await fetch_json(
            session=self._session,
            url=url,
            params={"overview": "full", "geometries": "geojson"},
            metrics=self._metrics,
            timeout=self._timeout,
            max_attempts=self._max_attempts,
            backoff=self._backoff,
            error_cls=RouteError,
        )
        if not isinstance(payload, dict):
            raise RouteError("Unexpected route payload")
        route = route_from_payload(payload)
        if route is None:
            LOGGER.info("route_not_found", code=payload.get("code"))
        return route
