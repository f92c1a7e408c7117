"""Viewport modes, camera memory and arbiter tuning."""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Dict, Optional

from mapquery.normalize.geo import Coordinate


class Mode(str, enum.Enum):
    IDLE = "idle"
    FOLLOWING = "following"
    NAVIGATING = "navigating"

    @property
    def tracks_user(self) -> bool:
        return self in (Mode.FOLLOWING, Mode.NAVIGATING)


@dataclass
class ViewportState:
    """Camera memory owned by the arbiter."""

    mode: Mode = Mode.IDLE
    last_applied_center: Optional[Coordinate] = None
    last_applied_zoom: Optional[int] = None
    gps_position: Optional[Coordinate] = None
    manual_location: Optional[Coordinate] = None

    @property
    def user_position(self) -> Optional[Coordinate]:
        """A manual start location overrides the live GPS fix."""
        return self.manual_location or self.gps_position


@dataclass(frozen=True)
class CameraInstruction:
    """What the map must do now."""

    center: Coordinate
    zoom: int
    animate: bool = True
    duration: float = 1.5
    cause: str = ""

    def as_dict(self) -> Dict[str, object]:
        return {
            "center": {"lat": self.center.latitude, "lng": self.center.longitude},
            "zoom": self.zoom,
            "animate": self.animate,
            "duration": self.duration,
            "cause": self.cause,
        }


@dataclass(frozen=True)
class ViewportConfig:
    default_zoom: int = 2
    follow_zoom: int = 16
    follow_threshold_deg: float = 0.0001
    center_epsilon_deg: float = 1e-6
    width_px: int = 1280
    height_px: int = 800
    fit_padding_px: int = 50
    fit_max_zoom: int = 15
    route_max_zoom: int = 18

    @classmethod
    def from_settings(cls, settings: Dict[str, object]) -> "ViewportConfig":
        map_cfg = settings.get("map", {})
        viewport_cfg = settings.get("viewport", {})
        defaults = cls()
        return cls(
            default_zoom=int(map_cfg.get("default_zoom", defaults.default_zoom)),
            follow_zoom=int(map_cfg.get("follow_zoom", defaults.follow_zoom)),
            follow_threshold_deg=float(viewport_cfg.get("follow_threshold_deg", defaults.follow_threshold_deg)),
            center_epsilon_deg=float(viewport_cfg.get("center_epsilon_deg", defaults.center_epsilon_deg)),
            width_px=int(map_cfg.get("width_px", defaults.width_px)),
            height_px=int(map_cfg.get("height_px", defaults.height_px)),
            fit_padding_px=int(map_cfg.get("fit_padding_px", defaults.fit_padding_px)),
            fit_max_zoom=int(map_cfg.get("fit_max_zoom", defaults.fit_max_zoom)),
            route_max_zoom=int(map_cfg.get("route_max_zoom", defaults.route_max_zoom)),
        )
