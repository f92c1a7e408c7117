"""Coordinate validation and map geometry helpers."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

TILE_SIZE = 256
MAX_MERCATOR_LAT = 85.0511287798


@dataclass(frozen=True)
class Coordinate:
    """A latitude/longitude pair with optional accuracy in meters."""

    latitude: float
    longitude: float
    accuracy: Optional[float] = None

    @property
    def is_valid(self) -> bool:
        return is_valid_coordinate(self.latitude, self.longitude)


def is_valid_coordinate(lat: object, lng: object) -> bool:
    """Return True when both values are finite real numbers."""
    for value in (lat, lng):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return False
        if math.isnan(value) or math.isinf(value):
            return False
    return True


def near_origin(lat: float, lng: float, *, epsilon: float) -> bool:
    """Return True when the pair sits within epsilon degrees of (0, 0) on both axes."""
    return abs(lat) <= epsilon and abs(lng) <= epsilon


def planar_distance(a: Coordinate, b: Coordinate) -> float:
    """Euclidean distance in degrees, adequate for short displacements."""
    return math.hypot(a.latitude - b.latitude, a.longitude - b.longitude)


def valid_points(points: Iterable[Coordinate]) -> List[Coordinate]:
    return [point for point in points if point is not None and point.is_valid]


@dataclass(frozen=True)
class BoundingBox:
    south: float
    west: float
    north: float
    east: float

    @classmethod
    def enclosing(cls, points: Iterable[Coordinate]) -> Optional["BoundingBox"]:
        """Smallest box containing every valid point, or None when there are none."""
        usable = valid_points(points)
        if not usable:
            return None
        lats = [point.latitude for point in usable]
        lngs = [point.longitude for point in usable]
        return cls(south=min(lats), west=min(lngs), north=max(lats), east=max(lngs))


def _project(lat: float, lng: float) -> Tuple[float, float]:
    """Spherical Mercator projection to zoom-0 pixel space."""
    lat = max(min(lat, MAX_MERCATOR_LAT), -MAX_MERCATOR_LAT)
    x = (lng + 180.0) / 360.0 * TILE_SIZE
    sin_lat = math.sin(math.radians(lat))
    y = (0.5 - math.log((1 + sin_lat) / (1 - sin_lat)) / (4 * math.pi)) * TILE_SIZE
    return x, y


def _unproject(x: float, y: float) -> Tuple[float, float]:
    lng = x / TILE_SIZE * 360.0 - 180.0
    n = math.pi - 2 * math.pi * y / TILE_SIZE
    lat = math.degrees(math.atan(math.sinh(n)))
    return lat, lng


def fit_bounds(
    box: BoundingBox,
    *,
    width_px: int,
    height_px: int,
    padding_px: int,
    max_zoom: int,
    min_zoom: int = 0,
) -> Tuple[Coordinate, int]:
    """Return the center and integer zoom that frame the box inside the padded viewport."""
    west_x, north_y = _project(box.north, box.west)
    east_x, south_y = _project(box.south, box.east)
    center_lat, center_lng = _unproject((west_x + east_x) / 2, (north_y + south_y) / 2)
    center = Coordinate(latitude=center_lat, longitude=center_lng)

    span_x = abs(east_x - west_x)
    span_y = abs(south_y - north_y)
    usable_w = max(width_px - 2 * padding_px, 1)
    usable_h = max(height_px - 2 * padding_px, 1)
    if span_x == 0 and span_y == 0:
        return center, max_zoom
    scales = []
    if span_x > 0:
        scales.append(usable_w / span_x)
    if span_y > 0:
        scales.append(usable_h / span_y)
    zoom = int(math.floor(math.log2(min(scales))))
    return center, max(min_zoom, min(zoom, max_zoom))
