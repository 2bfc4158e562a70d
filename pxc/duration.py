"""Parsing of short human-readable durations such as ``5d`` or ``1y``."""

from __future__ import annotations

import re
from datetime import timedelta

SECOND_DEF = "s"
MINUTE_DEF = "m"
HOUR_DEF = "h"
DAY_DEF = "d"
YEAR_DEF = "y"

DAY = timedelta(days=1)
YEAR = DAY * 365

_UNITS = {
    SECOND_DEF: timedelta(seconds=1),
    MINUTE_DEF: timedelta(minutes=1),
    HOUR_DEF: timedelta(hours=1),
    DAY_DEF: DAY,
    YEAR_DEF: YEAR,
}

_PATTERN = re.compile(r"([0-9]+)([" + "".join(_UNITS) + r"])")
_INT64_MAX = 2**63 - 1


def parse_to_duration(s: str) -> timedelta:
    """Convert ``<number><unit>`` (units s, m, h, d, y) to a timedelta.

    Raises ValueError when the text does not have that form.
    """
    match = _PATTERN.fullmatch(s)
    if match is None:
        raise ValueError("Unable to parse")
    digits, unit = match.groups()
    number = int(digits)
    if number > _INT64_MAX:
        raise ValueError(f"value out of range: {digits}")
    try:
        return number * _UNITS[unit]
    except OverflowError as exc:
        raise ValueError(f"duration out of range: {s}") from exc