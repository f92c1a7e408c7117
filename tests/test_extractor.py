import itertools

import pytest

from mapquery.observability.metrics import MetricsRegistry
from mapquery.parse.extractor import extract_places
from mapquery.parse.tags import TAG_PATTERN, scan_tags, strip_tags


def test_text_without_tags_is_unchanged():
    text = "Nothing to pin here, just a friendly answer."
    result = extract_places(text)
    assert result.display_text == text
    assert result.places == []


def test_well_formed_tags_are_always_stripped():
    text = (
        "Try {{DATA:Blue Bottle|40.7128|-74.0060|123 Broadway, NY}} or "
        "{{DATA:Ghost|0|0|Nowhere}} or {{DATA:Broken|north|-74|Somewhere}}."
    )
    result = extract_places(text)
    assert TAG_PATTERN.search(result.display_text) is None
    assert "{{DATA" not in result.display_text
    assert result.display_text == "Try  or  or ."
    assert [place.name for place in result.places] == ["Blue Bottle"]


def test_origin_placeholder_is_rejected():
    assert extract_places("{{DATA:Ghost|0|0|Nowhere}}").places == []


def test_point_just_outside_origin_radius_is_kept():
    places = extract_places("{{DATA:Real|0.0002|0.0002|Somewhere}}").places
    assert len(places) == 1
    assert places[0].coordinates.latitude == pytest.approx(0.0002)


def test_places_keep_order_of_appearance():
    text = "first {{DATA:A|1|1|x}} then {{DATA:B|2|2|y}} done"
    result = extract_places(text)
    assert [place.name for place in result.places] == ["A", "B"]
    assert result.display_text == "first  then  done"


def test_decimal_comma_is_accepted():
    place = extract_places("{{DATA:C|40,71|-74,00|NY}}").places[0]
    assert place.coordinates.latitude == pytest.approx(40.71)
    assert place.coordinates.longitude == pytest.approx(-74.0)


def test_fields_are_trimmed_and_description_synthesised():
    place = extract_places("{{DATA:  Central Park  | 40.785 | -73.968 |  New York, NY 10024  }}").places[0]
    assert place.name == "Central Park"
    assert place.address == "New York, NY 10024"
    assert place.description == "Located at New York, NY 10024"


def test_each_place_gets_a_fresh_id():
    counter = itertools.count()
    result = extract_places(
        "{{DATA:A|1|1|x}}{{DATA:B|2|2|y}}",
        id_factory=lambda: f"id-{next(counter)}",
    )
    assert [place.id for place in result.places] == ["id-0", "id-1"]

    default_ids = {place.id for place in extract_places("{{DATA:A|1|1|x}}{{DATA:B|2|2|y}}").places}
    assert len(default_ids) == 2


def test_malformed_tag_stays_visible():
    text = "See {{DATA:Missing field|40.7|-74.0}} for details."
    result = extract_places(text)
    assert result.places == []
    assert result.display_text == text


def test_address_stops_at_first_closing_marker():
    tags = list(scan_tags("{{DATA:Shop|1.5|2.5|Unit 4, Mall Rd}} trailing}}"))
    assert len(tags) == 1
    assert tags[0].address == "Unit 4, Mall Rd"
    assert strip_tags("{{DATA:Shop|1.5|2.5|Unit 4, Mall Rd}} trailing}}") == " trailing}}"


def test_input_is_not_mutated_and_metrics_are_counted():
    text = "{{DATA:A|1|1|x}} {{DATA:Ghost|0|0|none}}"
    original = str(text)
    metrics = MetricsRegistry()
    result = extract_places(text, metrics=metrics)
    assert text == original
    assert len(result.places) == 1
    assert metrics.get("tags_matched") == 2
    assert metrics.get("tags_rejected") == 1
    assert metrics.get("places_extracted") == 1


def test_non_finite_coordinates_are_rejected():
    assert extract_places("{{DATA:Huge|1e999|10|x}}").places == []
