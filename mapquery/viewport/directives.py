"""Camera directives accepted by the viewport arbiter."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

from mapquery.models import RouteData
from mapquery.normalize.geo import Coordinate


@dataclass(frozen=True)
class ExplicitCenter:
    """Search result, selected pin or chosen location. ``zoom=None`` keeps the current zoom."""

    center: Coordinate
    zoom: Optional[int] = None


@dataclass(frozen=True)
class FollowUser:
    """Locate button. ``enabled=None`` toggles.

    Only the toggle form clears a manual start override. ``enabled=False``
    stops tracking and keeps the override, so search results do not discard
    a chosen start location.
    """

    enabled: Optional[bool] = None


@dataclass(frozen=True)
class GpsUpdate:
    position: Coordinate


@dataclass(frozen=True)
class Tick:
    pass


@dataclass(frozen=True)
class FitRoute:
    route: RouteData


@dataclass(frozen=True)
class FitBounds:
    points: List[Coordinate] = field(default_factory=list)


@dataclass(frozen=True)
class UserDragged:
    pass


@dataclass(frozen=True)
class ManualLocation:
    """Set (or clear with ``None``) the start-location override."""

    location: Optional[Coordinate]
    recenter: bool = True


@dataclass(frozen=True)
class StartNavigation:
    pass


@dataclass(frozen=True)
class StopNavigation:
    pass


@dataclass(frozen=True)
class CameraMoved:
    """Map move-end/zoom-end report; updates camera memory only."""

    center: Coordinate
    zoom: int


ViewDirective = Union[
    ExplicitCenter,
    FollowUser,
    GpsUpdate,
    Tick,
    FitRoute,
    FitBounds,
    UserDragged,
    ManualLocation,
    StartNavigation,
    StopNavigation,
    CameraMoved,
]


def _number(payload: Dict[str, object], key: str, default: Optional[float] = None) -> float:
    value = payload.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValueError(f"{key!r} must be a number, got {value!r}")
    return float(value)


def _flag(payload: Dict[str, object], key: str, default: Optional[bool]) -> Optional[bool]:
    value = payload.get(key, default)
    if value is not None and not isinstance(value, bool):
        raise ValueError(f"{key!r} must be true, false or null, got {value!r}")
    return value


def _coordinate(payload: object) -> Coordinate:
    if not isinstance(payload, dict):
        raise ValueError(f"expected a {{lat, lng}} object, got {payload!r}")
    return Coordinate(
        latitude=_number(payload, "lat"),
        longitude=_number(payload, "lng"),
        accuracy=_number(payload, "accuracy") if payload.get("accuracy") is not None else None,
    )


def directive_from_dict(payload: Dict[str, object]) -> ViewDirective:
    """Build a directive from its JSON form, e.g. ``{"type": "gps", "position": {...}}``.

    Raises ``ValueError`` for an unknown type or a malformed field.
    """
    if not isinstance(payload, dict):
        raise ValueError(f"directive must be an object, got {payload!r}")
    kind = payload.get("type")
    if kind == "center":
        zoom = int(_number(payload, "zoom")) if payload.get("zoom") is not None else None
        return ExplicitCenter(center=_coordinate(payload.get("center")), zoom=zoom)
    if kind == "follow":
        return FollowUser(enabled=_flag(payload, "enabled", None))
    if kind == "gps":
        return GpsUpdate(position=_coordinate(payload.get("position")))
    if kind == "tick":
        return Tick()
    if kind == "route":
        route = RouteData(
            path=[_coordinate(point) for point in payload.get("path", [])],
            distance_meters=_number(payload, "distance_meters", 0.0),
            duration_seconds=_number(payload, "duration_seconds", 0.0),
        )
        return FitRoute(route=route)
    if kind == "bounds":
        return FitBounds(points=[_coordinate(point) for point in payload.get("points", [])])
    if kind == "drag":
        return UserDragged()
    if kind == "manual":
        location = payload.get("location")
        return ManualLocation(
            location=_coordinate(location) if location is not None else None,
            recenter=_flag(payload, "recenter", True),
        )
    if kind == "start_navigation":
        return StartNavigation()
    if kind == "stop_navigation":
        return StopNavigation()
    if kind == "moved":
        return CameraMoved(center=_coordinate(payload.get("center")), zoom=int(_number(payload, "zoom")))
    raise ValueError(f"Unknown directive type: {kind!r}")
