"""Sequencing of user actions and service responses.

The coordinator owns no camera logic: every camera-affecting action becomes a
directive for the :class:`ViewportArbiter`, and any instruction it returns is
handed to the map surface.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol

import structlog

from mapquery.models import GroundingChunk, ModelReply, Place, RouteData, Suggestion
from mapquery.normalize.geo import Coordinate
from mapquery.observability.metrics import MetricsRegistry
from mapquery.orchestrator.debounce import LatestWins
from mapquery.parse.extractor import ORIGIN_EPSILON, extract_places
from mapquery.services.errors import GeocodingError, RouteError, ServiceError
from mapquery.services.geocoding import SuggestionClient
from mapquery.services.llm import ModelClient
from mapquery.services.routing import RouteClient
from mapquery.viewport.arbiter import ViewportArbiter
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
from mapquery.viewport.state import CameraInstruction

LOGGER = structlog.get_logger(__name__)

SEARCH_FAILED = "I encountered an error. Please try again."
ROUTE_FAILED = "Failed to find route. Please try again."

POSITION_ERRORS = {
    1: "Location access denied. Please enable permissions.",
    3: "Location request timed out.",
}


def describe_position_error(code: int) -> str:
    return POSITION_ERRORS.get(code, "Unable to retrieve your location.")


class AppState(str, enum.Enum):
    IDLE = "idle"
    LOADING = "loading"
    RESULTS = "results"
    ERROR = "error"


class MapSurface(Protocol):
    def apply(self, instruction: CameraInstruction) -> None:
        ...


class RecordingSurface:
    """Collects instructions instead of driving a real map."""

    def __init__(self) -> None:
        self.instructions: List[CameraInstruction] = []

    def apply(self, instruction: CameraInstruction) -> None:
        self.instructions.append(instruction)


@dataclass(frozen=True)
class CoordinatorConfig:
    search_zoom: int = 14
    place_zoom: int = 16
    origin_epsilon_deg: float = ORIGIN_EPSILON
    suggest_debounce_seconds: float = 0.5

    @classmethod
    def from_settings(cls, settings: Dict[str, object]) -> "CoordinatorConfig":
        map_cfg = settings.get("map", {})
        extraction_cfg = settings.get("extraction", {})
        services_cfg = settings.get("services", {})
        defaults = cls()
        return cls(
            search_zoom=int(map_cfg.get("search_zoom", defaults.search_zoom)),
            place_zoom=int(map_cfg.get("place_zoom", defaults.place_zoom)),
            origin_epsilon_deg=float(extraction_cfg.get("origin_epsilon_deg", defaults.origin_epsilon_deg)),
            suggest_debounce_seconds=float(services_cfg.get("suggest_debounce_seconds", defaults.suggest_debounce_seconds)),
        )


@dataclass
class SearchOutcome:
    text: str
    places: List[Place]
    grounding_chunks: List[GroundingChunk] = field(default_factory=list)
    camera: Optional[CameraInstruction] = None


class Coordinator:
    """Turns UI events and collaborator results into arbiter directives."""

    def __init__(
        self,
        *,
        model: Optional[ModelClient] = None,
        routes: Optional[RouteClient] = None,
        suggestions: Optional[SuggestionClient] = None,
        arbiter: Optional[ViewportArbiter] = None,
        surface: Optional[MapSurface] = None,
        metrics: Optional[MetricsRegistry] = None,
        config: Optional[CoordinatorConfig] = None,
    ) -> None:
        self._metrics = metrics or MetricsRegistry()
        self._config = config or CoordinatorConfig()
        self._model = model
        self._routes = routes
        self._suggestions = suggestions
        self.arbiter = arbiter or ViewportArbiter(metrics=self._metrics)
        self.surface = surface or RecordingSurface()
        self._gates: Dict[str, LatestWins[List[Suggestion]]] = {
            kind: LatestWins(delay=self._config.suggest_debounce_seconds, metrics=self._metrics, name=f"suggest_{kind}")
            for kind in ("start", "destination")
        }
        self._search_gate: LatestWins[ModelReply] = LatestWins(delay=0, metrics=self._metrics, name="search")
        self._route_gate: LatestWins[List[RouteData]] = LatestWins(delay=0, metrics=self._metrics, name="route")
        self._awaiting_fix = False

        self.status = AppState.IDLE
        self.message: Optional[str] = None
        self.places: List[Place] = []
        self.grounding_chunks: List[GroundingChunk] = []
        self.selected_place_id: Optional[str] = None
        self.destination: Optional[Coordinate] = None
        self.route: Optional[RouteData] = None

    def _dispatch(self, directive: ViewDirective) -> Optional[CameraInstruction]:
        instruction = self.arbiter.submit(directive)
        if instruction is not None:
            self.surface.apply(instruction)
        return instruction

    # -- search ----------------------------------------------------------

    async def search(self, query: str) -> Optional[SearchOutcome]:
        """Ask the model and show its places; returns None when blank, failed or superseded."""
        prompt = query.strip()
        if not prompt:
            return None
        if self._model is None:
            raise RuntimeError("No model client configured")
        model = self._model
        location = self.arbiter.state.user_position
        self.status = AppState.LOADING
        self.message = None
        self.selected_place_id = None
        self._dispatch(FollowUser(enabled=False))
        try:
            reply = await self._search_gate.submit(lambda: model.ask(prompt, location))
        except ServiceError as exc:
            LOGGER.warning("search_failed", error=str(exc))
            self.status = AppState.ERROR
            self.message = SEARCH_FAILED
            return None
        if reply is None:
            LOGGER.debug("search_superseded", query=prompt)
            return None

        result = extract_places(
            reply.text,
            origin_epsilon=self._config.origin_epsilon_deg,
            metrics=self._metrics,
        )
        self.places = result.places
        self.grounding_chunks = reply.grounding_chunks
        self.message = result.display_text if result.display_text.strip() else "Here is what I found."
        camera = None
        if self.places:
            camera = self._dispatch(ExplicitCenter(center=self.places[0].coordinates, zoom=self._config.search_zoom))
        self.status = AppState.RESULTS
        LOGGER.info("search_complete", places=len(self.places), grounding=len(self.grounding_chunks))
        return SearchOutcome(
            text=self.message,
            places=list(self.places),
            grounding_chunks=list(self.grounding_chunks),
            camera=camera,
        )

    def select_place(self, place_id: str) -> Optional[CameraInstruction]:
        place = next((item for item in self.places if item.id == place_id), None)
        if place is None:
            return None
        self.selected_place_id = place_id
        self._dispatch(FollowUser(enabled=False))
        return self._dispatch(ExplicitCenter(center=place.coordinates, zoom=self._config.place_zoom))

    def show_all(self) -> Optional[CameraInstruction]:
        return self._dispatch(FitBounds(points=[place.coordinates for place in self.places]))

    # -- location --------------------------------------------------------

    def locate(self) -> Optional[CameraInstruction]:
        before = self.arbiter.state
        instruction = self._dispatch(FollowUser())
        if before.manual_location is not None:
            self.message = "Switched back to GPS location."
        elif before.mode.tracks_user:
            self.message = "Stopped following your location."
        else:
            self.message = "Following your location."
        after = self.arbiter.state
        self._awaiting_fix = after.mode.tracks_user and after.gps_position is None
        return instruction

    def on_position(self, fix: Coordinate) -> Optional[CameraInstruction]:
        instruction = self._dispatch(GpsUpdate(position=fix))
        if self._awaiting_fix and self.arbiter.state.gps_position is not None:
            self._awaiting_fix = False
            self.message = "Located you successfully."
            self.selected_place_id = None
        return instruction

    def on_position_error(self, code: int) -> str:
        self._awaiting_fix = False
        self.message = describe_position_error(code)
        LOGGER.warning("position_error", code=code)
        return self.message

    def tick(self) -> Optional[CameraInstruction]:
        return self._dispatch(Tick())

    def set_start(self, location: Coordinate) -> Optional[CameraInstruction]:
        instruction = self._dispatch(ManualLocation(location=location))
        self.message = "Start location set."
        return instruction

    def clear_start(self) -> Optional[CameraInstruction]:
        instruction = self._dispatch(ManualLocation(location=None))
        self.message = "Start location cleared. Using GPS."
        return instruction

    def set_destination(self, location: Coordinate) -> Optional[CameraInstruction]:
        if not location.is_valid:
            return None
        self.destination = location
        self._dispatch(FollowUser(enabled=False))
        instruction = self._dispatch(ExplicitCenter(center=location, zoom=self._config.place_zoom))
        self.message = "Destination set."
        return instruction

    def pin_destination(self, location: Coordinate) -> None:
        """Map click: remember the destination without moving the camera."""
        if not location.is_valid:
            return
        self.destination = location
        self._dispatch(FollowUser(enabled=False))
        self.message = "Destination pinned! Start the journey to route."

    def clear_destination(self) -> None:
        self.destination = None
        self.message = "Destination cleared."

    # -- map events ------------------------------------------------------

    def on_drag(self) -> None:
        self._dispatch(UserDragged())

    def on_map_moved(self, center: Coordinate, zoom: int) -> None:
        self._dispatch(CameraMoved(center=center, zoom=zoom))

    # -- routing ---------------------------------------------------------

    async def suggest(self, query: str, *, kind: str = "destination") -> Optional[List[Suggestion]]:
        """Debounced lookup; returns None when a newer query superseded this one."""
        if self._suggestions is None:
            raise RuntimeError("No suggestion service configured")
        client = self._suggestions

        async def _lookup() -> List[Suggestion]:
            try:
                return await client.search(query)
            except GeocodingError as exc:
                LOGGER.warning("suggestions_failed", error=str(exc))
                return []

        return await self._gates[kind].submit(_lookup)

    async def plan_route(self, start: Coordinate, end: Coordinate) -> Optional[RouteData]:
        if self._routes is None:
            raise RuntimeError("No routing service configured")
        client = self._routes

        async def _lookup() -> List[RouteData]:
            found = await client.fetch_route(start, end)
            return [found] if found is not None else []

        try:
            found = await self._route_gate.submit(_lookup)
        except RouteError as exc:
            LOGGER.warning("route_failed", error=str(exc))
            self.message = ROUTE_FAILED
            return None
        if found is None:
            LOGGER.debug("route_superseded")
            return None
        if not found:
            self.message = "No route found between those locations."
            return None
        route = found[0]
        self.route = route
        self.destination = end
        self._dispatch(ManualLocation(location=start, recenter=False))
        self.message = (
            f"Route found! {round(route.distance_meters / 1000)}km, "
            f"{round(route.duration_seconds / 60)} mins."
        )
        self._dispatch(FitRoute(route=route))
        return route

    def start_trip(self) -> Optional[CameraInstruction]:
        if self.arbiter.state.user_position is None or self.destination is None:
            self.message = "Please set both start and destination locations."
            return None
        instruction = self._dispatch(StartNavigation())
        self.message = "Navigation started! Follow the route on the map."
        return instruction

    def cancel_route(self) -> None:
        for gate in self._gates.values():
            gate.cancel()
        self._route_gate.cancel()
        self.route = None
        self.destination = None
        self._dispatch(StopNavigation())
