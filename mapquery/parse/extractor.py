"""Extraction pipeline turning tagged model text into display text and places.

The pipeline runs four named stages per tag: match (``scan_tags``), normalise
(trim fields, accept a decimal comma), validate (finite numbers away from the
origin placeholder) and accept (allocate a ``Place``). Every matched span is
stripped from the display text whether or not it was accepted.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, List, Optional

import structlog

from mapquery.models import Place, new_place_id
from mapquery.normalize.fields import describe_address, parse_float
from mapquery.normalize.geo import Coordinate, is_valid_coordinate, near_origin
from mapquery.observability.metrics import MetricsRegistry
from mapquery.parse.tags import ExtractionTag, has_tag_residue, scan_tags, strip_tags

LOGGER = structlog.get_logger(__name__)

ORIGIN_EPSILON = 0.0001


@dataclass
class ExtractionResult:
    """Clean display text plus the accepted places in order of appearance."""

    display_text: str
    places: List[Place] = field(default_factory=list)


@dataclass(frozen=True)
class NormalisedTag:
    name: str
    address: str
    latitude: Optional[float]
    longitude: Optional[float]


def normalise_tag(tag: ExtractionTag) -> NormalisedTag:
    return NormalisedTag(
        name=tag.name.strip(),
        address=tag.address.strip(),
        latitude=parse_float(tag.lat_text),
        longitude=parse_float(tag.lng_text),
    )


def rejection_reason(tag: NormalisedTag, *, origin_epsilon: float = ORIGIN_EPSILON) -> Optional[str]:
    """Return why a normalised tag cannot become a place, or None when it is usable."""
    if tag.latitude is None or tag.longitude is None:
        return "unparsable_coordinate"
    if not is_valid_coordinate(tag.latitude, tag.longitude):
        return "non_finite_coordinate"
    if near_origin(tag.latitude, tag.longitude, epsilon=origin_epsilon):
        return "origin_placeholder"
    return None


def accept_tag(tag: NormalisedTag, *, id_factory: Callable[[], str] = new_place_id) -> Place:
    return Place(
        id=id_factory(),
        name=tag.name,
        coordinates=Coordinate(latitude=tag.latitude, longitude=tag.longitude),
        address=tag.address,
        description=describe_address(tag.address),
    )


def extract_places(
    text: str,
    *,
    origin_epsilon: float = ORIGIN_EPSILON,
    id_factory: Callable[[], str] = new_place_id,
    metrics: Optional[MetricsRegistry] = None,
) -> ExtractionResult:
    """Parse sentinel tags out of ``text`` without mutating it."""
    places: List[Place] = []
    for raw in scan_tags(text):
        if metrics is not None:
            metrics.incr("tags_matched")
        tag = normalise_tag(raw)
        reason = rejection_reason(tag, origin_epsilon=origin_epsilon)
        if reason is not None:
            LOGGER.debug("tag_rejected", name=tag.name, reason=reason, span=raw.raw_span)
            if metrics is not None:
                metrics.incr("tags_rejected")
            continue
        places.append(accept_tag(tag, id_factory=id_factory))

    display_text = strip_tags(text)
    if has_tag_residue(display_text):
        LOGGER.debug("malformed_tag_suspected")
    if metrics is not None:
        metrics.incr("places_extracted", len(places))
    return ExtractionResult(display_text=display_text, places=places)
