"""Scanner for {{DATA:name|lat|lng|address}} sentinel tags in model text."""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterator

# Fields 1-3 stop at a pipe; the address stops at the first closing brace.
TAG_PATTERN = re.compile(r"\{\{DATA:([^|]*?)\|([^|]*?)\|([^|]*?)\|([^}]*?)\}\}")
TAG_OPENER = "{{DATA:"


@dataclass(frozen=True)
class ExtractionTag:
    """A raw sentinel match before trimming or numeric validation."""

    raw_span: str
    name: str
    lat_text: str
    lng_text: str
    address: str


def scan_tags(text: str) -> Iterator[ExtractionTag]:
    """Yield every non-overlapping well-formed tag, left to right."""
    for match in TAG_PATTERN.finditer(text):
        name, lat_text, lng_text, address = match.groups()
        yield ExtractionTag(
            raw_span=match.group(0),
            name=name,
            lat_text=lat_text,
            lng_text=lng_text,
            address=address,
        )


def strip_tags(text: str) -> str:
    """Remove every well-formed tag span, accepted or not."""
    return TAG_PATTERN.sub("", text)


def has_tag_residue(text: str) -> bool:
    """True when an opener survives stripping, i.e. a malformed tag leaked through."""
    return TAG_OPENER in text
