"""Parsing of human-readable relative durations such as "30d" or "1w 2d 6h"."""

from datetime import timedelta
import re

from .exceptions import ConfigurationError

_SECOND_NS = 1_000_000_000
_DAY_NS = 86400 * _SECOND_NS

# Nanoseconds per unit. A month is 30.44 days and a year 365.25 days.
_UNIT_NANOSECONDS = {
    "ns": 1,
    "nsec": 1,
    "nanos": 1,
    "us": 1_000,
    "usec": 1_000,
    "micros": 1_000,
    "ms": 1_000_000,
    "msec": 1_000_000,
    "millis": 1_000_000,
    "s": _SECOND_NS,
    "sec": _SECOND_NS,
    "secs": _SECOND_NS,
    "second": _SECOND_NS,
    "seconds": _SECOND_NS,
    "m": 60 * _SECOND_NS,
    "min": 60 * _SECOND_NS,
    "mins": 60 * _SECOND_NS,
    "minute": 60 * _SECOND_NS,
    "minutes": 60 * _SECOND_NS,
    "h": 3600 * _SECOND_NS,
    "hr": 3600 * _SECOND_NS,
    "hrs": 3600 * _SECOND_NS,
    "hour": 3600 * _SECOND_NS,
    "hours": 3600 * _SECOND_NS,
    "d": _DAY_NS,
    "day": _DAY_NS,
    "days": _DAY_NS,
    "w": 7 * _DAY_NS,
    "week": 7 * _DAY_NS,
    "weeks": 7 * _DAY_NS,
    "M": 2_630_016 * _SECOND_NS,
    "month": 2_630_016 * _SECOND_NS,
    "months": 2_630_016 * _SECOND_NS,
    "y": 31_557_600 * _SECOND_NS,
    "year": 31_557_600 * _SECOND_NS,
    "years": 31_557_600 * _SECOND_NS,
}

_TOKEN_PATTERN = re.compile(r"(\d+)\s*([a-zA-Z]+)")


def _unit_nanoseconds(unit: str, text: str) -> int:
    # "M" (months) is the only unit where case matters
    if unit in _UNIT_NANOSECONDS:
        return _UNIT_NANOSECONDS[unit]
    if unit.lower() in _UNIT_NANOSECONDS:
        return _UNIT_NANOSECONDS[unit.lower()]
    raise ConfigurationError(f"Unknown duration unit {unit!r} in {text!r}")


def parse_duration(text: str) -> timedelta:
    """
    Parse a relative duration.

    Accepts one or more ``<number><unit>`` terms, optionally separated by
    whitespace, e.g. ``"30d"``, ``"1d 12h"``, ``"2weeks"``, ``"1month"``.
    ``m`` is minutes and ``M`` is months.

    Raises:
        ConfigurationError: If the text is empty or contains unknown units
    """
    normalized = (text or "").strip()
    if not normalized:
        raise ConfigurationError("Duration must not be empty")

    total = 0
    position = 0
    for match in _TOKEN_PATTERN.finditer(normalized):
        if normalized[position:match.start()].strip():
            raise ConfigurationError(f"Invalid duration: {text!r}")
        total += int(match.group(1)) * _unit_nanoseconds(match.group(2), text)
        position = match.end()

    if position == 0 or normalized[position:].strip():
        raise ConfigurationError(f"Invalid duration: {text!r}")

    return timedelta(microseconds=total // 1_000)
