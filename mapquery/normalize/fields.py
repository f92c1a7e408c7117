"""Field level normalisation and display helpers."""
from __future__ import annotations

import math
import re
from typing import Optional

_FLOAT_PREFIX_RE = re.compile(r"[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?")


def normalise_decimal(raw: str) -> str:
    """Trim a numeric field and accept a decimal comma in place of a point."""
    return raw.strip().replace(",", ".", 1)


def parse_float(raw: str) -> Optional[float]:
    """Parse the leading number of a field, returning None unless it is finite."""
    match = _FLOAT_PREFIX_RE.match(normalise_decimal(raw))
    if not match:
        return None
    number = float(match.group(0))
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def describe_address(address: str) -> str:
    return f"Located at {address}"


def format_distance(meters: float) -> str:
    if meters < 1000:
        return f"{round(meters)} m"
    return f"{meters / 1000:.1f} km"


def format_duration(seconds: float) -> str:
    minutes = round(seconds / 60)
    if minutes < 60:
        return f"{minutes} mins"
    hours, remainder = divmod(minutes, 60)
    return f"{hours} h {remainder} min"
