"""Command-line entrypoints for natural-language map search."""
from __future__ import annotations

import argparse
import asyncio
import json
import sys
import tomllib
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional

import orjson
import structlog
from dotenv import load_dotenv

try:
    import uvloop
except ImportError:  # pragma: no cover - uvloop optional on some platforms
    uvloop = None

from mapquery.fetch.session import HttpSession, create_http_session
from mapquery.models import Place
from mapquery.normalize.fields import format_distance, format_duration
from mapquery.normalize.geo import Coordinate, is_valid_coordinate
from mapquery.observability.log import configure_logging
from mapquery.observability.metrics import MetricsRegistry
from mapquery.observability.tracing import clear_context, set_context
from mapquery.orchestrator.coordinator import Coordinator, CoordinatorConfig, RecordingSurface
from mapquery.parse.extractor import ORIGIN_EPSILON, extract_places
from mapquery.services.errors import ServiceError
from mapquery.services.geocoding import DEFAULT_NOMINATIM_URL, MIN_QUERY_CHARS, SuggestionClient
from mapquery.services.llm import GeminiClient
from mapquery.services.routing import DEFAULT_OSRM_URL, RouteClient
from mapquery.viewport.arbiter import ViewportArbiter
from mapquery.viewport.directives import directive_from_dict
from mapquery.viewport.state import ViewportConfig

LOGGER = structlog.get_logger(__name__)

DEFAULT_SETTINGS = Path("config/settings.toml")
DEFAULT_LOGGING = Path("config/logging.yaml")


def load_settings(path: Path) -> Dict[str, object]:
    """Read the TOML configuration file."""
    with path.open("rb") as handle:
        return tomllib.load(handle)


def parse_coordinate(raw: str) -> Coordinate:
    """Parse ``"lat,lng"`` for argparse."""
    try:
        lat_text, lng_text = raw.split(",", 1)
        lat, lng = float(lat_text), float(lng_text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected LAT,LNG but got {raw!r}") from exc
    if not is_valid_coordinate(lat, lng):
        raise argparse.ArgumentTypeError(f"not a usable coordinate: {raw!r}")
    return Coordinate(latitude=lat, longitude=lng)


def build_arg_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser."""
    parser = argparse.ArgumentParser(prog="mapquery", description="Natural-language place search on a map")
    parser.add_argument("--settings", default=str(DEFAULT_SETTINGS), help="Path to settings TOML")
    sub = parser.add_subparsers(dest="command", required=True)

    ask = sub.add_parser("ask", help="Ask the model for places and show where the map would go")
    ask.add_argument("query", help="Natural-language query")
    ask.add_argument("--near", type=parse_coordinate, help="Location hint as LAT,LNG")

    extract = sub.add_parser("extract", help="Extract tagged places from model text")
    extract.add_argument("--file", help="Read text from this file instead of stdin")

    suggest = sub.add_parser("suggest", help="Look up address suggestions")
    suggest.add_argument("query")

    route = sub.add_parser("route", help="Fetch a driving route")
    route.add_argument("--start", type=parse_coordinate, required=True, help="LAT,LNG")
    route.add_argument("--end", type=parse_coordinate, required=True, help="LAT,LNG")

    replay = sub.add_parser("replay", help="Feed a JSONL directive stream through the viewport arbiter")
    replay.add_argument("path", help="JSONL file, one directive per line")

    return parser


def _place_payload(place: Place) -> Dict[str, Any]:
    return place.model_dump(mode="json")


def _instruction_payload(instruction) -> Optional[Dict[str, object]]:
    return instruction.as_dict() if instruction is not None else None


def _fetch_kwargs(settings: Dict[str, object]) -> Dict[str, Any]:
    fetch_cfg = settings.get("fetch", {})
    return {
        "timeout": float(fetch_cfg.get("timeout_seconds", 30)),
        "max_attempts": int(fetch_cfg.get("max_attempts", 4)),
        "backoff": float(fetch_cfg.get("backoff_seconds", 1.0)),
    }


def build_route_client(settings: Dict[str, object], session: HttpSession, metrics: MetricsRegistry) -> RouteClient:
    services_cfg = settings.get("services", {})
    return RouteClient(
        session,
        metrics=metrics,
        base_url=str(services_cfg.get("osrm_url", DEFAULT_OSRM_URL)),
        **_fetch_kwargs(settings),
    )


def build_suggestion_client(settings: Dict[str, object], session: HttpSession, metrics: MetricsRegistry) -> SuggestionClient:
    services_cfg = settings.get("services", {})
    return SuggestionClient(
        session,
        metrics=metrics,
        base_url=str(services_cfg.get("nominatim_url", DEFAULT_NOMINATIM_URL)),
        min_chars=int(services_cfg.get("suggest_min_chars", MIN_QUERY_CHARS)),
        **_fetch_kwargs(settings),
    )


def build_coordinator(settings: Dict[str, object], *, model, metrics: MetricsRegistry, routes=None, suggestions=None) -> Coordinator:
    arbiter = ViewportArbiter(ViewportConfig.from_settings(settings), metrics=metrics)
    return Coordinator(
        model=model,
        routes=routes,
        suggestions=suggestions,
        arbiter=arbiter,
        surface=RecordingSurface(),
        metrics=metrics,
        config=CoordinatorConfig.from_settings(settings),
    )


async def run_ask(args: argparse.Namespace, settings: Dict[str, object], *, model=None) -> Dict[str, object]:
    metrics = MetricsRegistry()
    client = model or GeminiClient.from_settings(settings, metrics=metrics)
    coordinator = build_coordinator(settings, model=client, metrics=metrics)
    if args.near is not None:
        coordinator.on_position(args.near)
    outcome = await coordinator.search(args.query)
    if outcome is None:
        return {"status": coordinator.status.value, "message": coordinator.message}
    return {
        "status": coordinator.status.value,
        "text": outcome.text,
        "places": [_place_payload(place) for place in outcome.places],
        "grounding": [chunk.model_dump(exclude_none=True) for chunk in outcome.grounding_chunks],
        "camera": _instruction_payload(outcome.camera),
        "metrics": metrics.summary(),
    }


def run_extract(text: str, settings: Dict[str, object]) -> Dict[str, object]:
    epsilon = float(settings.get("extraction", {}).get("origin_epsilon_deg", ORIGIN_EPSILON))
    result = extract_places(text, origin_epsilon=epsilon)
    return {
        "display_text": result.display_text,
        "places": [_place_payload(place) for place in result.places],
    }


async def run_suggest(args: argparse.Namespace, settings: Dict[str, object]) -> List[Dict[str, object]]:
    metrics = MetricsRegistry()
    fetch_cfg = settings.get("fetch", {})
    async with create_http_session(
        user_agent=str(fetch_cfg.get("user_agent", "mapquery")),
        timeout=float(fetch_cfg.get("timeout_seconds", 30)),
        max_connections=int(fetch_cfg.get("max_connections", 4)),
    ) as session:
        client = build_suggestion_client(settings, session, metrics)
        suggestions = await client.search(args.query)
    rows = []
    for suggestion in suggestions:
        point = suggestion.coordinates
        rows.append({
            "display_name": suggestion.display_name,
            "lat": point.latitude if point else None,
            "lng": point.longitude if point else None,
        })
    return rows


async def run_route(args: argparse.Namespace, settings: Dict[str, object]) -> Dict[str, object]:
    metrics = MetricsRegistry()
    fetch_cfg = settings.get("fetch", {})
    async with create_http_session(
        user_agent=str(fetch_cfg.get("user_agent", "mapquery")),
        timeout=float(fetch_cfg.get("timeout_seconds", 30)),
        max_connections=int(fetch_cfg.get("max_connections", 4)),
    ) as session:
        routes = build_route_client(settings, session, metrics)
        coordinator = build_coordinator(settings, model=None, metrics=metrics, routes=routes)
        route = await coordinator.plan_route(args.start, args.end)
    if route is None:
        return {"found": False, "message": coordinator.message}
    return {
        "found": True,
        "message": coordinator.message,
        "distance": format_distance(route.distance_meters),
        "duration": format_duration(route.duration_seconds),
        "points": len(route.path),
        "camera": _instruction_payload(coordinator.arbiter.last_instruction),
    }


def run_replay(
    path: Path,
    settings: Dict[str, object],
    *,
    metrics: Optional[MetricsRegistry] = None,
) -> List[Dict[str, object]]:
    """Feed each JSONL directive through one arbiter; malformed lines become no-op rows."""
    metrics = metrics or MetricsRegistry()
    arbiter = ViewportArbiter(ViewportConfig.from_settings(settings), metrics=metrics)
    rows: List[Dict[str, object]] = []
    for number, line in enumerate(path.read_text(encoding="utf-8").splitlines(), start=1):
        if not line.strip():
            continue
        try:
            directive = directive_from_dict(orjson.loads(line))
        except (ValueError, KeyError, TypeError) as exc:
            metrics.incr("directives_invalid")
            LOGGER.warning("directive_rejected", line=number, error=str(exc))
            rows.append({
                "line": number,
                "directive": None,
                "instruction": None,
                "mode": arbiter.mode.value,
                "error": str(exc),
            })
            continue
        instruction = arbiter.submit(directive)
        rows.append({
            "line": number,
            "directive": type(directive).__name__,
            "instruction": _instruction_payload(instruction),
            "mode": arbiter.mode.value,
        })
    return rows


def _run(coro):
    if uvloop is not None:
        return uvloop.run(coro)
    return asyncio.run(coro)


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for the CLI."""
    load_dotenv()
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    settings = load_settings(Path(args.settings))
    configure_logging(DEFAULT_LOGGING)

    set_context(request_id=uuid.uuid4().hex, command=args.command)
    try:
        if args.command == "extract":
            if args.file:
                text = Path(args.file).read_text(encoding="utf-8")
            else:
                text = sys.stdin.read()
            print(json.dumps(run_extract(text, settings), indent=2))
            return

        if args.command == "replay":
            metrics = MetricsRegistry()
            for row in run_replay(Path(args.path), settings, metrics=metrics):
                print(json.dumps(row))
            print(json.dumps({"metrics": metrics.summary()["viewport"]}))
            return

        try:
            if args.command == "ask":
                print(json.dumps(_run(run_ask(args, settings)), indent=2))
            elif args.command == "suggest":
                print(json.dumps(_run(run_suggest(args, settings)), indent=2))
            elif args.command == "route":
                print(json.dumps(_run(run_route(args, settings)), indent=2))
        except ServiceError as exc:
            raise SystemExit(f"{args.command} failed: {exc}")
    finally:
        clear_context()


if __name__ == "__main__":
    main()
