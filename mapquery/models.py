"""Pydantic models for places, routes and collaborator payloads."""
from __future__ import annotations

import uuid
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from mapquery.normalize.fields import parse_float
from mapquery.normalize.geo import Coordinate, is_valid_coordinate


def new_place_id() -> str:
    """Short random identifier, unique within a session but not a stable key."""
    return uuid.uuid4().hex[:9]


class Place(BaseModel):
    """A located result produced from one accepted sentinel tag."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_place_id)
    name: str
    coordinates: Coordinate
    address: Optional[str] = None
    description: Optional[str] = None


class RouteData(BaseModel):
    """Route geometry and totals from the routing service."""

    model_config = ConfigDict(frozen=True)

    path: List[Coordinate]
    distance_meters: float
    duration_seconds: float


class WebSource(BaseModel):
    uri: str
    title: Optional[str] = None


class ReviewSnippet(BaseModel):
    text: str


class MapsSource(BaseModel):
    uri: str
    title: Optional[str] = None
    review_snippets: List[ReviewSnippet] = Field(default_factory=list)


class GroundingChunk(BaseModel):
    """Citation attached to a grounded model answer."""

    web: Optional[WebSource] = None
    maps: Optional[MapsSource] = None


class ModelReply(BaseModel):
    """Raw answer text and citations from the language model."""

    text: str
    grounding_chunks: List[GroundingChunk] = Field(default_factory=list)


class Suggestion(BaseModel):
    """A forward-geocoding candidate as returned by the search service."""

    model_config = ConfigDict(coerce_numbers_to_str=True)

    display_name: str
    lat: str
    lon: str

    @property
    def coordinates(self) -> Optional[Coordinate]:
        lat = parse_float(self.lat)
        lng = parse_float(self.lon)
        if lat is None or lng is None or not is_valid_coordinate(lat, lng):
            return None
        return Coordinate(latitude=lat, longitude=lng)
