from __future__ import annotations

import re

"""Human duration parser used by ``expire`` rules.

Accepts strings like ``1d``, ``2h30m``, ``1.5 hours``, ``3 weeks``; a bare
number is taken as milliseconds. Returns milliseconds as an int.
"""

__all__ = [
    "DurationError",
    "parse_duration",
]

_SECOND = 1000
_MINUTE = 60 * _SECOND
_HOUR = 60 * _MINUTE
_DAY = 24 * _HOUR
_WEEK = 7 * _DAY
_YEAR = 365.25 * _DAY
_MONTH = _YEAR / 12

UNITS: dict[str, float] = {
    "ms": 1, "msec": 1, "millisecond": 1, "milliseconds": 1,
    "s": _SECOND, "sec": _SECOND, "secs": _SECOND, "second": _SECOND, "seconds": _SECOND,
    "m": _MINUTE, "min": _MINUTE, "mins": _MINUTE, "minute": _MINUTE, "minutes": _MINUTE,
    "h": _HOUR, "hr": _HOUR, "hrs": _HOUR, "hour": _HOUR, "hours": _HOUR,
    "d": _DAY, "day": _DAY, "days": _DAY,
    "w": _WEEK, "wk": _WEEK, "week": _WEEK, "weeks": _WEEK,
    "mo": _MONTH, "month": _MONTH, "months": _MONTH,
    "y": _YEAR, "yr": _YEAR, "year": _YEAR, "years": _YEAR,
}

_TOKEN = re.compile(r"(-?\d+(?:\.\d+)?|\.\d+)\s*([a-zA-Z]*)")


class DurationError(ValueError):
    pass


def parse_duration(text: str | int | float) -> int:
    """Parse a duration into milliseconds.

    Raises:
        DurationError: empty input, unknown unit, or trailing garbage
    """
    if isinstance(text, bool):
        raise DurationError(f"invalid duration: {text!r}")
    if isinstance(text, (int, float)):
        return int(text)

    s = str(text).strip().lower().replace(",", "")
    if not s:
        raise DurationError("empty duration")

    total = 0.0
    pos = 0
    matched = False
    while pos < len(s):
        if s[pos].isspace():
            pos += 1
            continue
        m = _TOKEN.match(s, pos)
        if m is None:
            raise DurationError(f"invalid duration: {text!r}")
        number, unit = m.group(1), m.group(2)
        factor = UNITS.get(unit or "ms")
        if factor is None:
            raise DurationError(f"unknown duration unit '{unit}' in {text!r}")
        total += float(number) * factor
        matched = True
        pos = m.end()

    if not matched:
        raise DurationError(f"invalid duration: {text!r}")
    return int(round(total))
