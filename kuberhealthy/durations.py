"""Parsing and formatting of duration strings such as "1h2m3.5s"."""

from __future__ import annotations

import re
from datetime import timedelta
from fractions import Fraction

_UNITS = {
    "ns": 1,
    "us": 1_000,
    "\u00b5s": 1_000,
    "\u03bcs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
}
_NUMBER = re.compile(r"(\d*)(?:\.(\d*))?")
_UNIT = re.compile(r"[^\d.]*")
_MAX = (1 << 63) - 1


def _parse_nanoseconds(text: str) -> int:
    s = text
    negative = False
    if s and s[0] in "+-":
        negative = s[0] == "-"
        s = s[1:]
    if s == "0":
        return 0
    if not s:
        raise ValueError(f"invalid duration {text!r}")
    total = 0
    pos = 0
    while pos < len(s):
        number = _NUMBER.match(s, pos)
        whole, frac = number.group(1), number.group(2)
        if not whole and not frac:
            raise ValueError(f"invalid duration {text!r}")
        pos = number.end()
        unit_match = _UNIT.match(s, pos)
        unit = unit_match.group()
        pos = unit_match.end()
        if not unit:
            raise ValueError(f"missing unit in duration {text!r}")
        scale = _UNITS.get(unit)
        if scale is None:
            raise ValueError(f"unknown unit {unit!r} in duration {text!r}")
        value = int(whole or 0) * scale
        if frac:
            value += int(Fraction(int(frac), 10 ** len(frac)) * scale)
        total += value
        if total > _MAX + 1:
            raise ValueError(f"invalid duration {text!r}")
    if total > _MAX and not negative:
        raise ValueError(f"invalid duration {text!r}")
    return -total if negative else total


def parse_duration(text: str) -> timedelta:
    """Parse a duration string; precision below a microsecond is truncated."""
    nanoseconds = _parse_nanoseconds(text)
    micros = abs(nanoseconds) // 1000
    return timedelta(microseconds=-micros if nanoseconds < 0 else micros)


def _fraction(value: int, precision: int) -> tuple[int, str]:
    if precision == 0:
        return value, ""
    whole, rest = divmod(value, 10**precision)
    digits = f"{rest:0{precision}d}".rstrip("0")
    return whole, f".{digits}" if digits else ""


def format_duration(delta: timedelta) -> str:
    """Render a duration in the compact form, e.g. "1h2m3s" or "250ms"."""
    nanoseconds = (delta // timedelta(microseconds=1)) * 1000
    negative = nanoseconds < 0
    u = abs(nanoseconds)
    if u == 0:
        return "0s"
    if u < 1_000_000_000:
        if u < 1_000:
            unit, precision = "ns", 0
        elif u < 1_000_000:
            unit, precision = "\u00b5s", 3
        else:
            unit, precision = "ms", 6
        whole, frac = _fraction(u, precision)
        text = f"{whole}{frac}{unit}"
    else:
        whole, frac = _fraction(u, 9)
        text = f"{whole % 60}{frac}s"
        minutes = whole // 60
        if minutes:
            hours = minutes // 60
            text = f"{minutes % 60}m{text}"
            if hours:
                text = f"{hours}h{text}"
    return f"-{text}" if negative else text