"""Single owner of the map camera.

Directives are processed one at a time. Each call to :meth:`ViewportArbiter.submit`
returns the camera instruction to apply, or ``None`` when the directive was
invalid, lost arbitration, or only changed the mode. Bad input never raises.
"""
from __future__ import annotations

import dataclasses
from typing import Callable, Dict, Optional, Type

import structlog

from mapquery.normalize.geo import BoundingBox, Coordinate, fit_bounds, planar_distance
from mapquery.observability.metrics import MetricsRegistry
from mapquery.viewport.directives import (
    CameraMoved,
    ExplicitCenter,
    FitBounds,
    FitRoute,
    FollowUser,
    GpsUpdate,
    ManualLocation,
    StartNavigation,
    StopNavigation,
    Tick,
    UserDragged,
    ViewDirective,
)
from mapquery.viewport.state import CameraInstruction, Mode, ViewportConfig, ViewportState

LOGGER = structlog.get_logger(__name__)

EXPLICIT_DURATION = 1.5
FOLLOW_DURATION = 1.0


class ViewportArbiter:
    """Resolves competing camera directives into one deterministic instruction."""

    def __init__(self, config: Optional[ViewportConfig] = None, *, metrics: Optional[MetricsRegistry] = None) -> None:
        self._config = config or ViewportConfig()
        self._metrics = metrics or MetricsRegistry()
        self._state = ViewportState()
        self._pending_zoom: Optional[int] = None
        self._last_instruction: Optional[CameraInstruction] = None
        self._handlers: Dict[Type, Callable[[object], Optional[CameraInstruction]]] = {
            ExplicitCenter: self._on_explicit_center,
            FollowUser: self._on_follow_user,
            GpsUpdate: self._on_gps_update,
            Tick: self._on_tick,
            FitRoute: self._on_fit_route,
            FitBounds: self._on_fit_bounds,
            UserDragged: self._on_user_dragged,
            ManualLocation: self._on_manual_location,
            StartNavigation: self._on_start_navigation,
            StopNavigation: self._on_stop_navigation,
            CameraMoved: self._on_camera_moved,
        }

    @property
    def mode(self) -> Mode:
        return self._state.mode

    @property
    def state(self) -> ViewportState:
        """A copy of the camera memory; only the arbiter mutates its own state."""
        return dataclasses.replace(self._state)

    @property
    def last_instruction(self) -> Optional[CameraInstruction]:
        return self._last_instruction

    def submit(self, directive: ViewDirective) -> Optional[CameraInstruction]:
        handler = self._handlers.get(type(directive))
        if handler is None:
            self._reject(directive, "unknown_directive")
            return None
        return handler(directive)

    # -- bookkeeping -----------------------------------------------------

    @property
    def _current_zoom(self) -> int:
        if self._state.last_applied_zoom is None:
            return self._config.default_zoom
        return self._state.last_applied_zoom

    def _apply(self, center: Coordinate, zoom: int, *, duration: float, cause: str) -> CameraInstruction:
        instruction = CameraInstruction(
            center=Coordinate(latitude=center.latitude, longitude=center.longitude),
            zoom=zoom,
            animate=True,
            duration=duration,
            cause=cause,
        )
        self._state.last_applied_center = instruction.center
        self._state.last_applied_zoom = zoom
        self._last_instruction = instruction
        self._metrics.incr("directives_applied")
        LOGGER.debug("camera_applied", cause=cause, zoom=zoom, mode=self._state.mode.value)
        return instruction

    def _suppress(self, directive: object, reason: str) -> None:
        self._metrics.incr("directives_suppressed")
        LOGGER.debug("directive_suppressed", directive=type(directive).__name__, reason=reason)

    def _reject(self, directive: object, reason: str) -> None:
        self._metrics.incr("directives_invalid")
        LOGGER.debug("directive_rejected", directive=type(directive).__name__, reason=reason)

    def _set_mode(self, mode: Mode) -> None:
        if mode is not self._state.mode:
            LOGGER.info("viewport_mode", previous=self._state.mode.value, mode=mode.value)
        self._state.mode = mode
        if not mode.tracks_user:
            self._pending_zoom = None

    def _differs(self, center: Coordinate, zoom: int) -> bool:
        last = self._state.last_applied_center
        if last is None or self._state.last_applied_zoom != zoom:
            return True
        epsilon = self._config.center_epsilon_deg
        return abs(last.latitude - center.latitude) > epsilon or abs(last.longitude - center.longitude) > epsilon

    def _center_once(self, directive: object, center: Coordinate, zoom: int, *, cause: str) -> Optional[CameraInstruction]:
        if not self._differs(center, zoom):
            self._suppress(directive, "unchanged")
            return None
        return self._apply(center, zoom, duration=EXPLICIT_DURATION, cause=cause)

    def _fit(self, directive: object, box: Optional[BoundingBox], *, max_zoom: int, cause: str) -> Optional[CameraInstruction]:
        if box is None:
            self._suppress(directive, "no_valid_points")
            return None
        center, zoom = fit_bounds(
            box,
            width_px=self._config.width_px,
            height_px=self._config.height_px,
            padding_px=self._config.fit_padding_px,
            max_zoom=max_zoom,
        )
        return self._apply(center, zoom, duration=EXPLICIT_DURATION, cause=cause)

    def _follow_step(self, directive: object) -> Optional[CameraInstruction]:
        if not self._state.mode.tracks_user:
            return None
        position = self._state.user_position
        if position is None:
            return None
        if self._pending_zoom is not None:
            zoom = self._pending_zoom
            self._pending_zoom = None
            return self._apply(position, zoom, duration=FOLLOW_DURATION, cause="follow")
        last = self._state.last_applied_center
        if last is not None and planar_distance(last, position) <= self._config.follow_threshold_deg:
            self._suppress(directive, "below_follow_threshold")
            return None
        return self._apply(position, self._current_zoom, duration=FOLLOW_DURATION, cause="follow")

    def _recenter_on_user(self, directive: object) -> Optional[CameraInstruction]:
        position = self._state.user_position
        if position is None:
            self._pending_zoom = self._config.follow_zoom
            return None
        self._pending_zoom = None
        return self._center_once(directive, position, self._config.follow_zoom, cause="locate")

    # -- handlers --------------------------------------------------------

    def _on_explicit_center(self, directive: ExplicitCenter) -> Optional[CameraInstruction]:
        if directive.center is None or not directive.center.is_valid:
            self._reject(directive, "invalid_coordinate")
            return None
        zoom = directive.zoom if directive.zoom is not None else self._current_zoom
        return self._center_once(directive, directive.center, zoom, cause="explicit_center")

    def _on_follow_user(self, directive: FollowUser) -> Optional[CameraInstruction]:
        enabled = directive.enabled
        if enabled is None:
            # toggle with a start override active: back to live GPS
            if self._state.manual_location is not None:
                self._state.manual_location = None
                self._set_mode(Mode.FOLLOWING)
                return self._recenter_on_user(directive)
            enabled = not self._state.mode.tracks_user
        if not enabled:
            self._set_mode(Mode.IDLE)
            return None
        if self._state.mode is not Mode.NAVIGATING:
            self._set_mode(Mode.FOLLOWING)
        return self._recenter_on_user(directive)

    def _on_gps_update(self, directive: GpsUpdate) -> Optional[CameraInstruction]:
        if directive.position is None or not directive.position.is_valid:
            self._reject(directive, "invalid_coordinate")
            return None
        self._state.gps_position = directive.position
        return self._follow_step(directive)

    def _on_tick(self, directive: Tick) -> Optional[CameraInstruction]:
        return self._follow_step(directive)

    def _on_fit_route(self, directive: FitRoute) -> Optional[CameraInstruction]:
        if self._state.mode.tracks_user:
            self._suppress(directive, "tracking_user")
            return None
        box = BoundingBox.enclosing(directive.route.path)
        return self._fit(directive, box, max_zoom=self._config.route_max_zoom, cause="fit_route")

    def _on_fit_bounds(self, directive: FitBounds) -> Optional[CameraInstruction]:
        box = BoundingBox.enclosing(directive.points)
        return self._fit(directive, box, max_zoom=self._config.fit_max_zoom, cause="fit_bounds")

    def _on_user_dragged(self, directive: UserDragged) -> Optional[CameraInstruction]:
        self._set_mode(Mode.IDLE)
        return None

    def _on_manual_location(self, directive: ManualLocation) -> Optional[CameraInstruction]:
        if directive.location is None:
            if self._state.manual_location is None:
                return None
            self._state.manual_location = None
            self._set_mode(Mode.FOLLOWING)
            return self._follow_step(directive)
        if not directive.location.is_valid:
            self._reject(directive, "invalid_coordinate")
            return None
        self._state.manual_location = directive.location
        if not directive.recenter:
            return None
        self._set_mode(Mode.IDLE)
        return self._center_once(directive, directive.location, self._config.follow_zoom, cause="manual_location")

    def _on_start_navigation(self, directive: StartNavigation) -> Optional[CameraInstruction]:
        position = self._state.user_position
        if position is None:
            self._suppress(directive, "no_user_position")
            return None
        self._set_mode(Mode.NAVIGATING)
        self._pending_zoom = None
        return self._center_once(directive, position, self._config.follow_zoom, cause="navigation")

    def _on_stop_navigation(self, directive: StopNavigation) -> Optional[CameraInstruction]:
        if self._state.mode is Mode.NAVIGATING:
            self._set_mode(Mode.IDLE)
        return None

    def _on_camera_moved(self, directive: CameraMoved) -> Optional[CameraInstruction]:
        if directive.center is None or not directive.center.is_valid:
            self._reject(directive, "invalid_coordinate")
            return None
        self._state.last_applied_center = Coordinate(
            latitude=directive.center.latitude,
            longitude=directive.center.longitude,
        )
        self._state.last_applied_zoom = int(directive.zoom)
        return None
