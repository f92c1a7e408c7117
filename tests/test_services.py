import asyncio

import httpx
import orjson
import pytest

from mapquery.fetch.fetcher import fetch_json
from mapquery.fetch.session import create_http_session
from mapquery.normalize.geo import Coordinate
from mapquery.observability.metrics import MetricsRegistry
from mapquery.services.errors import GeocodingError, RouteError, ServiceError
from mapquery.services.geocoding import SuggestionClient
from mapquery.services.routing import RouteClient, route_from_payload

START = Coordinate(latitude=40.7128, longitude=-74.0060)
END = Coordinate(latitude=40.7580, longitude=-73.9855)

ROUTE_PAYLOAD = {
    "code": "Ok",
    "routes": [
        {
            "distance": 12345.6,
            "duration": 900.0,
            "geometry": {
                "type": "LineString",
                "coordinates": [[-74.0060, 40.7128], [-73.99, 40.73], [-73.9855, 40.7580]],
            },
        }
    ],
}


def _json_response(payload, status=200):
    return httpx.Response(status, content=orjson.dumps(payload), headers={"Content-Type": "application/json"})


def _run_with_transport(handler, body):
    async def _run():
        async with create_http_session(
            user_agent="test-agent",
            timeout=5,
            max_connections=1,
            transport=httpx.MockTransport(handler),
        ) as session:
            return await body(session)

    return asyncio.run(_run())


def test_route_request_and_parsing():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return _json_response(ROUTE_PAYLOAD)

    metrics = MetricsRegistry()

    async def body(session):
        client = RouteClient(session, metrics=metrics, base_url="https://osrm.test/route/v1/driving/")
        return await client.fetch_route(START, END)

    route = _run_with_transport(handler, body)
    assert route is not None
    assert route.distance_meters == pytest.approx(12345.6)
    assert route.duration_seconds == 900.0
    assert route.path[0] == START
    assert route.path[-1] == END

    request = seen[0]
    assert request.url.path == "/route/v1/driving/-74.006,40.7128;-73.9855,40.758"
    assert request.url.params["overview"] == "full"
    assert request.url.params["geometries"] == "geojson"
    assert request.headers["User-Agent"] == "test-agent"
    assert metrics.get("http_2xx") == 1


def test_route_payload_without_routes_is_none():
    assert route_from_payload({"code": "NoRoute", "routes": []}) is None
    assert route_from_payload({"code": "NoRoute"}) is None


def test_route_geometry_drops_unusable_points():
    payload = {
        "routes": [
            {
                "distance": 10,
                "duration": 2,
                "geometry": {"coordinates": [[-74.0, 40.0], [1.0], [None, 41.5], [-72.0, 41.0]]},
            }
        ]
    }
    route = route_from_payload(payload)
    assert [point.longitude for point in route.path] == [-74.0, -72.0]


def test_route_not_found_returns_none():
    def handler(request):
        return _json_response({"code": "NoRoute", "routes": []})

    async def body(session):
        return await RouteClient(session, metrics=MetricsRegistry()).fetch_route(START, END)

    assert _run_with_transport(handler, body) is None


def test_route_http_error_raises_route_error():
    def handler(request):
        return _json_response({"message": "busy"}, status=503)

    metrics = MetricsRegistry()

    async def body(session):
        return await RouteClient(session, metrics=metrics).fetch_route(START, END)

    with pytest.raises(RouteError):
        _run_with_transport(handler, body)
    assert metrics.get("http_5xx") == 1


def test_route_rejects_invalid_endpoints_without_request():
    def handler(request):
        raise AssertionError("no request expected")

    async def body(session):
        bad = Coordinate(latitude=float("nan"), longitude=0.0)
        return await RouteClient(session, metrics=MetricsRegistry()).fetch_route(bad, END)

    with pytest.raises(RouteError):
        _run_with_transport(handler, body)


def test_fetch_retries_transport_errors():
    calls = {"count": 0}

    def handler(request):
        calls["count"] += 1
        if calls["count"] == 1:
            raise httpx.ConnectError("refused", request=request)
        return _json_response({"ok": True})

    metrics = MetricsRegistry()

    async def body(session):
        return await fetch_json(
            session=session,
            url="https://api.test/thing",
            metrics=metrics,
            max_attempts=2,
            backoff=0,
        )

    assert _run_with_transport(handler, body) == {"ok": True}
    assert calls["count"] == 2
    assert metrics.get("retries") == 1


def test_fetch_gives_up_after_max_attempts():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    async def body(session):
        return await fetch_json(
            session=session,
            url="https://api.test/thing",
            metrics=MetricsRegistry(),
            max_attempts=2,
            backoff=0,
            error_cls=GeocodingError,
        )

    with pytest.raises(GeocodingError):
        _run_with_transport(handler, body)


def test_fetch_invalid_json_raises_service_error():
    def handler(request):
        return httpx.Response(200, content=b"<html>not json</html>")

    async def body(session):
        return await fetch_json(session=session, url="https://api.test/thing", metrics=MetricsRegistry())

    with pytest.raises(ServiceError):
        _run_with_transport(handler, body)


def test_suggestions_parse_and_skip_bad_rows():
    seen = []

    def handler(request):
        seen.append(request)
        return _json_response(
            [
                {"display_name": "Paris, France", "lat": "48.8566", "lon": "2.3522"},
                {"display_name": "Paris, Texas", "lat": 33.6609, "lon": -95.5555},
                {"lat": "1", "lon": "2"},
            ]
        )

    async def body(session):
        client = SuggestionClient(session, metrics=MetricsRegistry(), base_url="https://geo.test/search")
        return await client.search("  Paris ")

    suggestions = _run_with_transport(handler, body)
    assert [item.display_name for item in suggestions] == ["Paris, France", "Paris, Texas"]
    assert suggestions[0].coordinates == Coordinate(latitude=48.8566, longitude=2.3522)
    assert suggestions[1].coordinates.longitude == pytest.approx(-95.5555)
    assert seen[0].url.params["q"] == "Paris"
    assert seen[0].url.params["format"] == "json"


def test_short_suggestion_query_skips_request():
    def handler(request):
        raise AssertionError("no request expected")

    async def body(session):
        return await SuggestionClient(session, metrics=MetricsRegistry()).search("pa")

    assert _run_with_transport(handler, body) == []


def test_suggestion_with_unusable_coordinates():
    def handler(request):
        return _json_response([{"display_name": "Nowhere", "lat": "", "lon": "abc"}])

    async def body(session):
        return await SuggestionClient(session, metrics=MetricsRegistry()).search("nowhere")

    suggestions = _run_with_transport(handler, body)
    assert suggestions[0].coordinates is None


def test_unexpected_suggestion_payload():
    def handler(request):
        return _json_response({"error": "nope"})

    async def body(session):
        return await SuggestionClient(session, metrics=MetricsRegistry()).search("berlin")

    with pytest.raises(GeocodingError):
        _run_with_transport(handler, body)
